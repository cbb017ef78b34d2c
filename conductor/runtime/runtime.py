"""Agent runtime: startup, lifecycle and the handle given to plugins.

Usage:
    runtime = await Runtime.init(
        model_providers=[provider],
        memory_provider=memory,
        plugins=[TimePlugin(), TextGenerationPlugin()],
    )
    await runtime.start()  # runs until stop() or a loop-fatal error
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Iterable, Sequence
from typing import Any

from conductor.capabilities.constants import REQUIRED_CAPABILITIES
from conductor.capabilities.manager import ModelManager
from conductor.config import Settings, get_settings
from conductor.exceptions import MissingCapabilityError, RuntimeStateError
from conductor.pipeline.context import (
    AgentContext,
    ContextChain,
    ContextItem,
    PlatformContext,
    UserInputContext,
    now_ms,
)
from conductor.pipeline.engine import PipelineEngine
from conductor.pipeline.retrieval import ObjectRetriever
from conductor.plugins.registry import PluginRegistry
from conductor.providers.base import ModelProvider, ModelRequestConfig
from conductor.providers.memory import MemoryProvider
from conductor.providers.plugin import Plugin, TriggerContext
from conductor.runtime.loop import EvaluationLoop, LoopState
from conductor.runtime.memory import MemoryManager
from conductor.runtime.queue import EventQueue
from conductor.telemetry import EventSink, get_event_sink

logger = logging.getLogger("runtime")


class Runtime:
    """Owns the model manager, memory, plugins, queue and evaluation loop.

    Build instances with :meth:`Runtime.init`, which performs the startup
    checks; the constructor only wires components together.
    """

    def __init__(
        self,
        models: ModelManager,
        memory: MemoryManager,
        plugins: PluginRegistry,
        settings: Settings,
        event_sink: EventSink | None = None,
    ) -> None:
        self._models = models
        self._memory = memory
        self._plugins = plugins
        self._settings = settings
        self._event_sink = event_sink or get_event_sink()

        self._retriever = ObjectRetriever(
            models,
            max_retries=settings.object_max_retries,
            event_sink=self._event_sink,
        )
        self._engine = PipelineEngine(
            self._retriever,
            plugins,
            temperature=settings.planning_temperature,
            event_sink=self._event_sink,
        )
        self._queue = EventQueue(memory)
        self._loop = EvaluationLoop(
            self._queue,
            memory,
            self._engine,
            plugins,
            poll_interval=settings.queue_poll_interval_seconds,
            event_sink=self._event_sink,
        )

        self._running = False
        self._trigger_tasks: set[asyncio.Task[Any]] = set()
        self.last_error: BaseException | None = None
        self.dropped_event: AgentContext | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    @classmethod
    async def init(
        cls,
        model_providers: Sequence[ModelProvider],
        memory_provider: MemoryProvider,
        plugins: Sequence[Plugin],
        capability_aliases: Iterable[Iterable[str]] | None = None,
        settings: Settings | None = None,
        event_sink: EventSink | None = None,
    ) -> Runtime:
        """Register and check every collaborator, then return a ready runtime.

        Raises:
            MissingCapabilityError: No provider supplies text generation, or a
                plugin requires a capability no provider supplies.
            ConfigurationError: Invalid provider/plugin/alias configuration.
            Exception: Any provider or memory health check failure.
        """
        settings = settings or get_settings()
        event_sink = event_sink or get_event_sink()

        for remaining in range(settings.startup_delay_seconds, 0, -1):
            logger.info(
                f"waiting to start runtime for {remaining} second(s)",
                extra={"service": "runtime", "phase": "startup"},
            )
            await asyncio.sleep(1)

        logger.info("runtime initializing", extra={"service": "runtime", "phase": "startup"})

        aliases = settings.capability_aliases if capability_aliases is None else capability_aliases
        models = ModelManager(event_sink=event_sink).register_providers(*model_providers)
        models.register_alias_groups(aliases)
        await models.init()
        await models.check_health()

        for capability in REQUIRED_CAPABILITIES:
            if not models.has_capability(capability):
                error = MissingCapabilityError(
                    capability, available=models.get_available_capabilities()
                )
                logger.error(
                    error.message,
                    extra={"service": "runtime", "capability": capability, "phase": "startup"},
                )
                raise error

        memory = MemoryManager(
            memory_provider,
            history_limit=settings.conversation_history_limit,
            event_sink=event_sink,
        )
        await memory.init()
        await memory.check_health()

        registry = PluginRegistry(event_sink=event_sink).register_plugins(*plugins)
        runtime = cls(models, memory, registry, settings, event_sink)
        await registry.init(runtime)

        for plugin in registry.all():
            for capability in plugin.required_capabilities:
                if not models.has_capability(capability):
                    error = MissingCapabilityError(
                        capability,
                        required_by=plugin.id,
                        available=models.get_available_capabilities(),
                    )
                    logger.error(
                        error.message,
                        extra={
                            "service": "runtime",
                            "plugin_id": plugin.id,
                            "capability": capability,
                            "phase": "startup",
                        },
                    )
                    raise error

        logger.info(
            "runtime initialized successfully",
            extra={
                "service": "runtime",
                "phase": "startup",
                "metadata": {
                    "model_providers": [p.id for p in model_providers],
                    "capabilities": models.get_available_capabilities(),
                    "memory_provider": memory_provider.id,
                    "plugins": [p.id for p in registry.all()],
                },
            },
        )
        return runtime

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start every plugin trigger and run the evaluation loop until stopped.

        A loop-fatal error stops the runtime, is recorded in
        :attr:`last_error` (the event being processed in
        :attr:`dropped_event`) and is re-raised. Nothing restarts automatically.
        """
        if self._running:
            return
        self._running = True
        self.last_error = None
        self.dropped_event = None
        logger.info("runtime started", extra={"service": "runtime"})

        for plugin in self._plugins.all():
            for trigger in plugin.triggers:
                self._start_trigger(plugin, trigger)

        try:
            await self._loop.run()
        except Exception as exc:
            self.last_error = exc
            self.dropped_event = self._loop.failed_context
            logger.error(
                "runtime stopped after a loop-fatal error",
                extra={"service": "runtime", "error": str(exc)},
            )
            raise
        finally:
            self._running = False
            self._cancel_triggers()

    async def stop(self) -> None:
        """Stop processing after the current event.

        Raises:
            RuntimeStateError: If the runtime is not running.
        """
        if not self._running:
            raise RuntimeStateError("Runtime is not running")
        self._running = False
        self._loop.stop()
        self._cancel_triggers()
        logger.info("runtime stopped", extra={"service": "runtime"})

    def _start_trigger(self, plugin: Plugin, trigger: Any) -> None:
        init_context = UserInputContext(
            id=f"{plugin.id}-trigger-{now_ms()}",
            plugin_id=plugin.id,
            action="trigger_init",
            content="",
            raw_message="",
            user="system",
        )
        logger.info(
            f"starting plugin \"{plugin.id}\" trigger \"{trigger.id}\"",
            extra={"service": "runtime", "plugin_id": plugin.id, "trigger_id": trigger.id},
        )
        outcome = trigger.start(TriggerContext(runtime=self, init_context=init_context))
        if inspect.isawaitable(outcome):
            task = asyncio.ensure_future(outcome)
            self._trigger_tasks.add(task)
            task.add_done_callback(self._trigger_finished(plugin.id, trigger.id))

    def _trigger_finished(self, plugin_id: str, trigger_id: str):
        def _done(task: asyncio.Task[Any]) -> None:
            self._trigger_tasks.discard(task)
            if task.cancelled():
                return
            exc = task.exception()
            if exc is not None:
                logger.error(
                    "plugin trigger failed",
                    extra={
                        "service": "runtime",
                        "plugin_id": plugin_id,
                        "trigger_id": trigger_id,
                        "error": str(exc),
                    },
                )

        return _done

    def _cancel_triggers(self) -> None:
        for task in list(self._trigger_tasks):
            task.cancel()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def state(self) -> LoopState:
        return self._loop.state

    @property
    def context(self) -> AgentContext | None:
        """The event currently being processed, if any."""
        return self._loop.current

    @property
    def memory(self) -> MemoryManager:
        return self._memory

    @property
    def models(self) -> ModelManager:
        return self._models

    @property
    def queue(self) -> EventQueue:
        return self._queue

    @property
    def settings(self) -> Settings:
        return self._settings

    def get_plugins(self) -> list[Plugin]:
        return self._plugins.all()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def push_context(self, context: AgentContext) -> None:
        await self._queue.push(context)

    def push_to_context_chain(self, item: ContextItem) -> None:
        """Merge ``item`` into the chain of the event being processed, if any."""
        if self.context is not None:
            self.context.context_chain.push(item)

    async def create_event(
        self,
        initial: UserInputContext,
        platform_context: PlatformContext | None = None,
    ) -> AgentContext:
        """Open (or reuse) the conversation for the sender and enqueue a new event."""
        conversation_id = await self._memory.get_or_create_conversation(
            initial.user, initial.plugin_id
        )
        context = AgentContext(
            context_chain=ContextChain([initial]),
            conversation_id=conversation_id,
            platform_context=platform_context,
        )
        try:
            await self._queue.push(context)
        except Exception as exc:
            logger.error(
                "error pushing event to queue",
                extra={
                    "service": "runtime",
                    "plugin_id": initial.plugin_id,
                    "user": initial.user,
                    "error": str(exc),
                },
            )
            raise
        return context

    # ------------------------------------------------------------------
    # Model access for plugins
    # ------------------------------------------------------------------

    async def get_object(
        self,
        schema: Any,
        prompt: str,
        config: ModelRequestConfig | None = None,
        max_retries: int | None = None,
    ) -> Any:
        return await self._retriever.get_object(schema, prompt, config, max_retries)

    async def execute_capability(
        self,
        capability_id: str,
        input: Any,
        config: ModelRequestConfig | None = None,
        provider_id: str | None = None,
    ) -> Any:
        return await self._models.execute(capability_id, input, config, provider_id)
