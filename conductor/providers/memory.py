"""Memory provider contract (conversation storage)."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from conductor.pipeline.context import ConversationMessage


class MemoryProvider(ABC):
    """Storage backend for conversations and their messages.

    The runtime never persists anything itself; every write goes through
    one of these methods. ``check_health`` must raise on failure.
    """

    def __init__(self, id: str, name: str = "", description: str = "") -> None:
        self.id = id
        self.name = name or id
        self.description = description

    @property
    def logger(self) -> logging.Logger:
        return logging.getLogger(f"memory.{self.id}")

    @abstractmethod
    async def get_or_create_conversation(self, user: str, platform: str) -> str:
        """Return the conversation id for ``(user, platform)``, creating it if needed."""

    @abstractmethod
    async def get_recent_conversation_history(
        self,
        user: str,
        platform: str,
        limit: int | None = None,
    ) -> list[ConversationMessage]:
        """Most recent messages, oldest first."""

    @abstractmethod
    async def store_user_interaction(
        self,
        user: str,
        platform: str,
        message: str,
        timestamp: int,
        message_id: str | None = None,
    ) -> None:
        ...

    @abstractmethod
    async def store_assistant_interaction(
        self,
        user: str,
        platform: str,
        message: str,
        context_chain: list[dict[str, Any]],
    ) -> None:
        ...

    async def init(self) -> None:
        return None

    async def check_health(self) -> None:
        return None
