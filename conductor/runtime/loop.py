"""Evaluation loop: plans and executes one event at a time.

States::

    idle -> planning -> executing -> idle
                 \\          \\
                  +-> error <-+

Step failures (missing plugin, reported failure, executor exception,
invalid step) become error items in the context chain and processing
continues. Anything else escapes :meth:`EvaluationLoop.process`, moves the
loop to ``error`` and stops :meth:`EvaluationLoop.run`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Sequence
from enum import Enum
from typing import Any

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from conductor.logging_config import clear_event_context, set_event_context
from conductor.pipeline.context import (
    AgentContext,
    ContextItem,
    ErrorContextItem,
    UserInputContext,
    get_user_input,
    now_ms,
)
from conductor.pipeline.engine import PipelineEngine
from conductor.pipeline.types import PipelineStep
from conductor.plugins.registry import PluginRegistry
from conductor.result import ErrorKind, Result
from conductor.runtime.memory import MemoryManager
from conductor.runtime.queue import EventQueue
from conductor.telemetry import EventSink, get_event_sink

logger = logging.getLogger("runtime.loop")

RUNTIME_PLUGIN_ID = "runtime"


class LoopState(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    EXECUTING = "executing"
    ERROR = "error"


class EvaluationLoop:
    """Single consumer of the event queue."""

    def __init__(
        self,
        queue: EventQueue,
        memory: MemoryManager,
        engine: PipelineEngine,
        plugins: PluginRegistry,
        poll_interval: float = 0.1,
        event_sink: EventSink | None = None,
    ) -> None:
        self._queue = queue
        self._memory = memory
        self._engine = engine
        self._plugins = plugins
        self._poll_interval = poll_interval
        self._event_sink = event_sink or get_event_sink()
        self._running = False
        self.state = LoopState.IDLE
        self.current: AgentContext | None = None
        self.failed_context: AgentContext | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Ask :meth:`run` to return after the event in progress, if any."""
        self._running = False

    async def run(self) -> None:
        """Drain the queue until stopped. Loop-fatal errors propagate."""
        self._running = True
        self.failed_context = None
        logger.info("evaluation loop started", extra={"service": "runtime"})
        try:
            while self._running:
                context = self._queue.shift()
                if context is None:
                    await asyncio.sleep(self._poll_interval)
                    continue
                try:
                    await self.process(context)
                finally:
                    self._queue.task_done()
        finally:
            self._running = False
            logger.info(
                "evaluation loop stopped",
                extra={"service": "runtime", "state": self.state.value},
            )

    async def process(self, context: AgentContext) -> None:
        """Plan and execute one event, then persist its result."""
        self.current = context
        user_input = get_user_input(context)
        set_event_context(
            event_id=context.event_id,
            conversation_id=context.conversation_id,
            user=user_input.user if user_input else None,
            platform=user_input.plugin_id if user_input else None,
        )
        start = time.perf_counter()
        try:
            self.state = LoopState.PLANNING
            logger.info(
                "received context from queue",
                extra={"service": "runtime", "queue_length": len(self._queue)},
            )
            if user_input is not None and not context.inbound_stored:
                await self._record_inbound(context, user_input)

            pipeline = await self._engine.generate(context)

            self.state = LoopState.EXECUTING
            await self.execute_pipeline(pipeline, context)

            await self._persist_result(context, user_input)

            duration_ms = int((time.perf_counter() - start) * 1000)
            self._event_sink.try_emit(
                type="runtime.event.completed",
                data={
                    "event_id": context.event_id,
                    "context_items": len(context.context_chain),
                    "errors": len(context.context_chain.errors()),
                    "duration_ms": duration_ms,
                },
            )
            logger.info(
                "event processed",
                extra={"service": "runtime", "duration_ms": duration_ms},
            )
            self.state = LoopState.IDLE
        except Exception as exc:
            self.state = LoopState.ERROR
            self.failed_context = context
            self._event_sink.try_emit(
                type="runtime.loop.failed",
                data={
                    "event_id": context.event_id,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            logger.error(
                "error in evaluation loop",
                extra={"service": "runtime", "error": str(exc)},
                exc_info=True,
            )
            raise
        finally:
            self.current = None
            clear_event_context()

    async def execute_pipeline(self, pipeline: Sequence[Any], context: AgentContext) -> None:
        """Run the steps strictly in order, splicing in planner changes after each one."""
        current: list[Any] = list(pipeline)
        index = 0
        logger.debug(
            "executing pipeline",
            extra={"service": "runtime", "pipeline_length": len(current)},
        )

        while index < len(current):
            step = _coerce_step(current[index])
            if step is None:
                self._record_failure(
                    context,
                    Result.fail(ErrorKind.INVALID_STEP, "Invalid step encountered in pipeline"),
                    plugin_id=RUNTIME_PLUGIN_ID,
                    action="invalid_step",
                    step=None,
                    index=index,
                )
                index += 1
                continue

            if not self._plugins.has(step.plugin_id):
                self._record_failure(
                    context,
                    Result.fail(ErrorKind.PLUGIN_NOT_FOUND, f"Plugin {step.plugin_id} not found"),
                    plugin_id=step.plugin_id,
                    action="plugin_not_found",
                    step=step,
                    index=index,
                )
                index += 1
                continue

            outcome = await self._execute_step(step, context)
            if outcome.ok and outcome.value:
                try:
                    item = _data_item(step, outcome.value)
                except (ValidationError, TypeError, ValueError) as exc:
                    outcome = Result.fail(
                        ErrorKind.VALIDATION, f"Invalid result data from {step}: {exc}"
                    )
                else:
                    context.context_chain.push(item)
            if not outcome.ok:
                self._record_failure(
                    context,
                    outcome,
                    plugin_id=step.plugin_id,
                    action=step.action,
                    step=step,
                    index=index,
                )

            modification = await self._engine.evaluate_modification(context, step, current)
            if modification.should_modify and modification.modified_steps is not None:
                current = self._engine.splice(current, index, modification.modified_steps)
                self._event_sink.try_emit(
                    type="pipeline.modification.applied",
                    data={
                        "step_index": index,
                        "explanation": modification.explanation,
                        "steps": [str(s) for s in current],
                    },
                )
                logger.info(
                    "pipeline modification applied",
                    extra={
                        "service": "runtime",
                        "step_index": index,
                        "explanation": modification.explanation,
                        "steps": [str(s) for s in current],
                    },
                )

            index += 1

    async def _execute_step(self, step: PipelineStep, context: AgentContext) -> Result[dict[str, Any]]:
        plugin = self._plugins.get(step.plugin_id)
        try:
            result = await plugin.execute(step.action, context)
        except Exception as exc:
            logger.error(
                "step execution failed",
                extra={
                    "service": "runtime",
                    "plugin_id": step.plugin_id,
                    "action": step.action,
                    "error": str(exc),
                },
                exc_info=True,
            )
            return Result.fail(ErrorKind.EXECUTION, str(exc), {"error_type": type(exc).__name__})

        if not result.success:
            return Result.fail(ErrorKind.STEP_FAILED, result.error or "Unknown error")
        return Result.success(result.data or {})

    def _record_failure(
        self,
        context: AgentContext,
        outcome: Result[Any],
        *,
        plugin_id: str,
        action: str,
        step: PipelineStep | None,
        index: int,
    ) -> None:
        message = outcome.error or "Unknown error"
        context.context_chain.push(
            ErrorContextItem(
                id=f"error-{now_ms()}",
                plugin_id=plugin_id,
                action=action,
                content=message,
                error=message,
                failed_step=step,
            )
        )
        kind = outcome.error_kind.value if outcome.error_kind else None
        self._event_sink.try_emit(
            type="pipeline.step.failed",
            data={
                "step_index": index,
                "plugin_id": plugin_id,
                "action": action,
                "kind": kind,
                "error": message,
            },
        )
        logger.warning(
            "pipeline step failed",
            extra={
                "service": "runtime",
                "step_index": index,
                "plugin_id": plugin_id,
                "action": action,
                "error_code": kind,
                "error": message,
            },
        )

    async def _record_inbound(self, context: AgentContext, user_input: UserInputContext) -> None:
        platform = user_input.plugin_id
        user_input.message_history = await self._memory.get_recent_conversation_history(
            user_input.user, platform
        )
        await self._memory.store_user_interaction(
            user_input.user,
            platform,
            user_input.raw_message,
            user_input.timestamp,
            user_input.id,
        )
        context.inbound_stored = True

    async def _persist_result(
        self, context: AgentContext, user_input: UserInputContext | None
    ) -> None:
        if user_input is None:
            logger.warning(
                "no user input in context chain, assistant response not stored",
                extra={"service": "runtime"},
            )
            return

        last = context.context_chain.last
        if last is None or last is user_input:
            logger.debug(
                "pipeline produced no context, assistant response not stored",
                extra={"service": "runtime"},
            )
            return

        message = last.message if last.message is not None else last.content
        await self._memory.store_assistant_interaction(
            user_input.user,
            user_input.plugin_id,
            message,
            context.context_chain.render(),
        )


def _coerce_step(step: Any) -> PipelineStep | None:
    if isinstance(step, PipelineStep):
        return step
    if isinstance(step, dict):
        try:
            return PipelineStep.model_validate(step)
        except ValidationError:
            return None
    return None


_FIELD_BY_ALIAS = {to_camel(name): name for name in ContextItem.model_fields}


def _data_item(step: PipelineStep, data: dict[str, Any]) -> ContextItem:
    """Build the chain item for a step result. Data keys override the base fields."""
    timestamp = now_ms()
    fields: dict[str, Any] = {
        "id": f"{step.plugin_id}-{timestamp}",
        "plugin_id": step.plugin_id,
        "type": step.action,
        "action": step.action,
        "content": json.dumps(data, default=str),
        "timestamp": timestamp,
    }
    for key, value in data.items():
        fields[_FIELD_BY_ALIAS.get(key, key)] = value
    return ContextItem.model_validate(fields)
