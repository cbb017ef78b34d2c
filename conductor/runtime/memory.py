"""Memory manager: the runtime's single access point to the memory provider."""

from __future__ import annotations

import logging
import time
from typing import Any

from conductor.pipeline.context import ConversationMessage
from conductor.providers.memory import MemoryProvider
from conductor.telemetry import EventSink, get_event_sink

logger = logging.getLogger("memory")


class MemoryManager:
    """Wraps a :class:`MemoryProvider` with logging, telemetry and defaults."""

    def __init__(
        self,
        provider: MemoryProvider,
        history_limit: int = 10,
        event_sink: EventSink | None = None,
    ) -> None:
        self._provider = provider
        self._history_limit = history_limit
        self._event_sink = event_sink or get_event_sink()

    @property
    def provider(self) -> MemoryProvider:
        return self._provider

    async def init(self) -> None:
        await self._provider.init()
        logger.debug(
            f"memory provider \"{self._provider.id}\" initialized",
            extra={"service": "memory", "provider": self._provider.id},
        )

    async def check_health(self) -> None:
        try:
            await self._provider.check_health()
        except Exception as exc:
            self._event_sink.try_emit(
                type="memory.healthcheck.failed",
                data={"provider": self._provider.id, "error": str(exc)},
            )
            logger.error(
                f"health check for memory provider {self._provider.id} failed",
                extra={"service": "memory", "provider": self._provider.id, "error": str(exc)},
            )
            raise
        self._event_sink.try_emit(
            type="memory.healthcheck.passed",
            data={"provider": self._provider.id},
        )

    async def get_or_create_conversation(self, user: str, platform: str) -> str:
        return await self._provider.get_or_create_conversation(user, platform)

    async def get_recent_conversation_history(
        self,
        user: str,
        platform: str,
        limit: int | None = None,
    ) -> list[ConversationMessage]:
        effective_limit = self._history_limit if limit is None else limit
        history = await self._provider.get_recent_conversation_history(
            user, platform, effective_limit
        )
        return [
            entry if isinstance(entry, ConversationMessage) else ConversationMessage.model_validate(entry)
            for entry in history
        ]

    async def store_user_interaction(
        self,
        user: str,
        platform: str,
        message: str,
        timestamp: int,
        message_id: str | None = None,
    ) -> None:
        start = time.perf_counter()
        await self._provider.store_user_interaction(user, platform, message, timestamp, message_id)
        logger.debug(
            "stored user interaction",
            extra={
                "service": "memory",
                "operation": "store_user_interaction",
                "user": user,
                "platform": platform,
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )

    async def store_assistant_interaction(
        self,
        user: str,
        platform: str,
        message: str,
        context_chain: list[dict[str, Any]],
    ) -> None:
        start = time.perf_counter()
        await self._provider.store_assistant_interaction(user, platform, message, context_chain)
        logger.debug(
            "stored assistant interaction",
            extra={
                "service": "memory",
                "operation": "store_assistant_interaction",
                "user": user,
                "platform": platform,
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )
