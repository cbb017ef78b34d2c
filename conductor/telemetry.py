"""Telemetry event sinks.

Every runtime component reports lifecycle events (provider registration,
health checks, retrieval attempts, plan generation, step failures) through an
:class:`EventSink`. The runtime hands its sink to each component explicitly;
``get_event_sink()`` supplies the default when none is given.
"""

from __future__ import annotations

import asyncio
import logging
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger("telemetry")


class EventSink:
    async def emit(self, *, type: str, data: dict[str, Any] | None) -> None:
        raise NotImplementedError

    def try_emit(self, *, type: str, data: dict[str, Any] | None) -> None:
        raise NotImplementedError


class NoOpEventSink(EventSink):
    async def emit(self, *, type: str, data: dict[str, Any] | None) -> None:
        _ = type, data
        return None

    def try_emit(self, *, type: str, data: dict[str, Any] | None) -> None:
        _ = type, data
        return None


class _ScheduledEventSink(EventSink):
    """Base for sinks whose ``try_emit`` schedules ``emit`` on the running loop."""

    def try_emit(self, *, type: str, data: dict[str, Any] | None) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return

        task = loop.create_task(self._safe_emit(type=type, data=data))
        _pending_emit_tasks.add(task)
        task.add_done_callback(_pending_emit_tasks.discard)

    async def _safe_emit(self, *, type: str, data: dict[str, Any] | None) -> None:
        try:
            await self.emit(type=type, data=data)
        except Exception:
            logger.error(
                "Failed to emit telemetry event",
                extra={"service": "telemetry", "event_type": type},
                exc_info=True,
            )


class LoggingEventSink(_ScheduledEventSink):
    """Writes every event as a structured log record on the ``telemetry`` logger."""

    def __init__(self, level: int = logging.DEBUG) -> None:
        self._level = level

    async def emit(self, *, type: str, data: dict[str, Any] | None) -> None:
        logger.log(
            self._level,
            type,
            extra={"service": "telemetry", "event_type": type, "metadata": data or {}},
        )


@dataclass
class TelemetryEvent:
    type: str
    data: dict[str, Any]
    ts: datetime = field(default_factory=lambda: datetime.now(UTC))


class RecordingEventSink(_ScheduledEventSink):
    """Keeps emitted events in memory (tests, in-process monitors)."""

    def __init__(self) -> None:
        self.events: list[TelemetryEvent] = []

    async def emit(self, *, type: str, data: dict[str, Any] | None) -> None:
        self.events.append(TelemetryEvent(type=type, data=dict(data or {})))

    def try_emit(self, *, type: str, data: dict[str, Any] | None) -> None:
        # Recording is synchronous so ordering matches emission order
        self.events.append(TelemetryEvent(type=type, data=dict(data or {})))

    def types(self) -> list[str]:
        return [event.type for event in self.events]

    def of_type(self, type: str) -> list[TelemetryEvent]:
        return [event for event in self.events if event.type == type]


_event_sink_var: ContextVar[EventSink | None] = ContextVar("event_sink", default=None)
_pending_emit_tasks: set[asyncio.Task[Any]] = set()


def set_event_sink(sink: EventSink) -> None:
    _event_sink_var.set(sink)


def clear_event_sink() -> None:
    _event_sink_var.set(None)


def get_event_sink() -> EventSink:
    return _event_sink_var.get() or NoOpEventSink()


async def wait_for_event_sink_tasks() -> None:
    """Await any pending event sink emit tasks (used in tests)."""

    if not _pending_emit_tasks:
        return

    pending = list(_pending_emit_tasks)
    try:
        await asyncio.gather(*pending, return_exceptions=True)
    finally:
        for task in pending:
            _pending_emit_tasks.discard(task)
