"""Plugin contract: executors the planner can schedule and triggers that create events."""

from __future__ import annotations

import logging
from abc import ABC
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from conductor.exceptions import RuntimeStateError
from conductor.pipeline.context import AgentContext, UserInputContext

if TYPE_CHECKING:
    from conductor.runtime.runtime import Runtime


@dataclass
class PluginResult:
    """Outcome of one executor call.

    ``data`` is merged into the context chain as a new item; ``error`` is
    recorded as an error item when ``success`` is false.
    """

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None

    @classmethod
    def ok(cls, data: dict[str, Any] | None = None) -> PluginResult:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> PluginResult:
        return cls(success=False, error=error)


ExecutorFn = Callable[[AgentContext], Awaitable[PluginResult]]


@dataclass
class Executor:
    name: str
    description: str
    fn: ExecutorFn


@dataclass
class TriggerContext:
    """What a trigger receives when the runtime starts it."""

    runtime: Runtime
    init_context: UserInputContext

    async def create_event(self, initial: UserInputContext, **kwargs: Any) -> None:
        await self.runtime.create_event(initial, **kwargs)


TriggerFn = Callable[[TriggerContext], Awaitable[None] | None]


@dataclass
class Trigger:
    """Event source started with the runtime (listener, poller, timer...)."""

    id: str
    start: TriggerFn


class Plugin(ABC):
    """Base class for plugins.

    Subclasses register executors and triggers in their constructor. The
    runtime handle is attached before :meth:`init` runs and is available
    through :attr:`runtime` from then on.
    """

    def __init__(
        self,
        id: str,
        name: str,
        description: str,
        required_capabilities: Iterable[str] = (),
    ) -> None:
        self.id = id
        self.name = name
        self.description = description
        self.required_capabilities: list[str] = list(required_capabilities)
        self.executors: list[Executor] = []
        self.triggers: list[Trigger] = []
        self._runtime: Runtime | None = None

    @property
    def logger(self) -> logging.Logger:
        return logging.getLogger(f"plugins.{self.id}")

    @property
    def runtime(self) -> Runtime:
        if self._runtime is None:
            raise RuntimeStateError(
                f"Plugin {self.id} has not been initialized with a runtime",
                details={"plugin_id": self.id},
            )
        return self._runtime

    def attach_runtime(self, runtime: Runtime) -> None:
        self._runtime = runtime

    def add_executor(self, executor: Executor) -> None:
        self.executors.append(executor)

    def add_trigger(self, trigger: Trigger) -> None:
        self.triggers.append(trigger)

    def get_executor(self, name: str) -> Executor | None:
        return next((e for e in self.executors if e.name == name), None)

    async def init(self, runtime: Runtime) -> None:
        """Prepare clients or state. Default: nothing to do."""
        _ = runtime
        return None

    async def execute(self, action: str, context: AgentContext) -> PluginResult:
        """Run the executor named ``action``. Unknown actions yield a failed result."""
        executor = self.get_executor(action)
        if executor is None:
            available = ", ".join(e.name for e in self.executors)
            return PluginResult.fail(
                f"Executor {action} not found on plugin {self.id}. Available: {available}"
            )
        return await executor.fn(context)


__all__ = [
    "Executor",
    "ExecutorFn",
    "Plugin",
    "PluginResult",
    "Trigger",
    "TriggerContext",
    "TriggerFn",
]
