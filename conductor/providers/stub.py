"""Stub providers for testing and development."""

from __future__ import annotations

import asyncio
import inspect
import json
import uuid
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from conductor.capabilities.constants import TEXT_GENERATION_CAPABILITY
from conductor.pipeline.context import ConversationMessage, now_ms
from conductor.providers.base import Capability, ModelProvider, ModelRequestConfig
from conductor.providers.memory import MemoryProvider

ScriptFn = Callable[[str], str | Awaitable[str]]

PLANNING_MARKER = "You are the planner"
MODIFICATION_MARKER = "You are monitoring the execution"

NO_CHANGE = json.dumps({"shouldModify": False, "explanation": "stub", "modifiedSteps": None})


class StubModelProvider(ModelProvider):
    """Stub model provider for testing.

    Responses come from ``responses``: either a list consumed in order
    (an ``Exception`` entry is raised instead of returned) or a callable
    receiving the prompt. Once a list is exhausted, or when no script is
    given, planning prompts get an empty plan, modification prompts get
    "no change" and anything else gets ``default_response``.
    """

    def __init__(
        self,
        id: str = "stub",
        responses: Iterable[str | Exception] | ScriptFn | None = None,
        capabilities: Iterable[str] = (TEXT_GENERATION_CAPABILITY,),
        default_response: str = "stub response",
        latency: float = 0.0,
        healthy: bool = True,
        init_error: Exception | None = None,
    ) -> None:
        super().__init__(id=id, name=f"Stub ({id})", description="Scripted model provider")
        if callable(responses):
            self._script: list[str | Exception] = []
            self._script_fn: ScriptFn | None = responses
        else:
            self._script = list(responses or [])
            self._script_fn = None
        self.default_response = default_response
        self.latency = latency
        self.healthy = healthy
        self.init_error = init_error
        self.prompts: list[str] = []
        self.configs: list[ModelRequestConfig | None] = []
        self.initialized = False

        for capability_id in capabilities:
            self.add_capability(
                Capability(
                    id=capability_id,
                    name=capability_id,
                    description=f"Stub {capability_id}",
                    execute=self._generate,
                )
            )

    def queue_responses(self, *responses: str | Exception) -> None:
        self._script.extend(responses)

    async def _generate(self, prompt: str, config: ModelRequestConfig | None = None) -> str:
        if self.latency:
            await asyncio.sleep(self.latency)
        self.prompts.append(prompt)
        self.configs.append(config)

        if self._script_fn is not None:
            result = self._script_fn(prompt)
            if inspect.isawaitable(result):
                result = await result
            return result

        if self._script:
            item = self._script.pop(0)
            if isinstance(item, Exception):
                raise item
            return item

        if PLANNING_MARKER in prompt:
            return "[]"
        if MODIFICATION_MARKER in prompt:
            return NO_CHANGE
        return self.default_response

    async def init(self) -> None:
        if self.init_error is not None:
            raise self.init_error
        self.initialized = True

    async def check_health(self) -> None:
        if not self.healthy:
            raise RuntimeError(f"stub model provider {self.id} is unhealthy")


class InMemoryMemoryProvider(MemoryProvider):
    """Keeps conversations in process memory."""

    def __init__(self, id: str = "memory-inmemory", healthy: bool = True) -> None:
        super().__init__(id=id, name="In-memory", description="Process-local conversation store")
        self.healthy = healthy
        self.conversations: dict[tuple[str, str], str] = {}
        self.messages: dict[str, list[ConversationMessage]] = {}
        self.assistant_contexts: list[list[dict[str, Any]]] = []

    async def get_or_create_conversation(self, user: str, platform: str) -> str:
        key = (user, platform)
        if key not in self.conversations:
            conversation_id = f"conv-{uuid.uuid4().hex}"
            self.conversations[key] = conversation_id
            self.messages[conversation_id] = []
        return self.conversations[key]

    async def get_recent_conversation_history(
        self,
        user: str,
        platform: str,
        limit: int | None = None,
    ) -> list[ConversationMessage]:
        conversation_id = self.conversations.get((user, platform))
        if conversation_id is None:
            return []
        history = self.messages[conversation_id]
        if limit is not None:
            history = history[-limit:] if limit > 0 else []
        return list(history)

    async def store_user_interaction(
        self,
        user: str,
        platform: str,
        message: str,
        timestamp: int,
        message_id: str | None = None,
    ) -> None:
        conversation_id = await self.get_or_create_conversation(user, platform)
        self.messages[conversation_id].append(
            ConversationMessage(
                role="user", content=message, timestamp=timestamp, message_id=message_id
            )
        )

    async def store_assistant_interaction(
        self,
        user: str,
        platform: str,
        message: str,
        context_chain: list[dict[str, Any]],
    ) -> None:
        conversation_id = await self.get_or_create_conversation(user, platform)
        self.messages[conversation_id].append(
            ConversationMessage(role="assistant", content=message, timestamp=now_ms())
        )
        self.assistant_contexts.append(context_chain)

    async def check_health(self) -> None:
        if not self.healthy:
            raise RuntimeError(f"memory provider {self.id} is unhealthy")

    def history_for(self, user: str, platform: str) -> list[ConversationMessage]:
        conversation_id = self.conversations.get((user, platform))
        return list(self.messages.get(conversation_id, [])) if conversation_id else []
