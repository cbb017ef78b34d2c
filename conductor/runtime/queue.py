"""Event queue feeding the evaluation loop.

Producers (triggers, platform adapters, the runtime's ``create_event``) call
:meth:`EventQueue.push`; the evaluation loop is the only consumer and
drains it with :meth:`EventQueue.shift`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from conductor.pipeline.context import AgentContext, ResponseHandler, get_user_input
from conductor.runtime.memory import MemoryManager

logger = logging.getLogger("runtime.queue")


class EventQueue:
    """FIFO of agent contexts waiting to be processed."""

    def __init__(self, memory: MemoryManager) -> None:
        self._memory = memory
        self._queue: asyncio.Queue[AgentContext] = asyncio.Queue()

    async def push(self, context: AgentContext) -> None:
        """Prepare an inbound event and enqueue it.

        Fetches the sender's recent history and attaches it to the user input,
        stores the inbound message, wraps the platform response handler with
        pre/post logging, then makes the event visible to the loop.
        """
        user_input = get_user_input(context)
        if user_input is not None:
            platform = user_input.plugin_id
            history = await self._memory.get_recent_conversation_history(user_input.user, platform)
            user_input.message_history = history

            await self._memory.store_user_interaction(
                user_input.user,
                platform,
                user_input.raw_message,
                user_input.timestamp,
                user_input.id,
            )
            context.inbound_stored = True

        platform_context = context.platform_context
        if platform_context is not None and platform_context.response_handler is not None:
            platform_context.response_handler = _wrap_response_handler(
                platform_context.response_handler, context
            )

        self.put(context)
        logger.info(
            "event queued",
            extra={
                "service": "runtime",
                "event_id": context.event_id,
                "plugin_id": user_input.plugin_id if user_input else None,
                "queue_length": len(self),
            },
        )

    def put(self, context: AgentContext) -> None:
        """Enqueue as-is, without history, persistence or handler wrapping."""
        context.queue = self
        self._queue.put_nowait(context)

    def shift(self) -> AgentContext | None:
        """Dequeue the oldest event, or ``None`` if the queue is empty."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every enqueued event has been processed."""
        await self._queue.join()

    def empty(self) -> bool:
        return self._queue.empty()

    def __len__(self) -> int:
        return self._queue.qsize()


def _wrap_response_handler(handler: ResponseHandler, context: AgentContext) -> ResponseHandler:
    if getattr(handler, "__conductor_wrapped__", False):
        return handler

    async def wrapped(response: Any) -> None:
        extra = {"service": "runtime", "event_id": context.event_id}
        logger.info("sending platform response", extra={**extra, "phase": "pre-response"})
        try:
            await handler(response)
        except Exception as exc:
            logger.error(
                "platform response handler failed",
                extra={**extra, "phase": "post-response", "error": str(exc)},
            )
            raise
        logger.info("platform response sent", extra={**extra, "phase": "post-response"})

    wrapped.__conductor_wrapped__ = True  # type: ignore[attr-defined]
    return wrapped
