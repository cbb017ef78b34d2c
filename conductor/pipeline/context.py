"""Context items, the context chain and the per-event agent context.

The context chain is the working memory of one in-flight event. Pushing an
item whose ``(plugin_id, action)`` pair already appears in the chain merges
it field-wise into that entry instead of appending; error items always
append so every failure stays visible in the trace.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from conductor.pipeline.types import PipelineStep

if TYPE_CHECKING:
    from conductor.runtime.queue import EventQueue


def now_ms() -> int:
    """Current wall-clock time in integer milliseconds."""
    return int(time.time() * 1000)


class ConversationMessage(BaseModel):
    """One message of stored conversation history."""

    model_config = ConfigDict(extra="allow")

    role: str
    content: str
    timestamp: int


class ContextItem(BaseModel):
    """One entry of the context chain.

    Executors attach arbitrary payload fields (they are kept as extras and
    rendered alongside the base fields).
    """

    model_config = ConfigDict(
        extra="allow",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str
    plugin_id: str
    action: str
    type: str
    content: str = ""
    timestamp: int = Field(default_factory=now_ms)

    @property
    def pair(self) -> tuple[str, str]:
        return (self.plugin_id, self.action)

    @property
    def message(self) -> str | None:
        """The user-facing message carried by this item, if any."""
        extra = self.model_extra or {}
        value = extra.get("message")
        return value if isinstance(value, str) else None

    def render(self) -> dict[str, Any]:
        """Serialize for templates and persistence (camelCase keys)."""
        return self.model_dump(mode="json", by_alias=True)


class UserInputContext(ContextItem):
    """Raw user input that started an event, plus the conversation history."""

    type: str = "user_input"
    raw_message: str = ""
    user: str = ""
    message_history: list[ConversationMessage] = Field(default_factory=list)


class ErrorContextItem(ContextItem):
    """A failure recorded while executing a pipeline."""

    type: str = "error"
    error: str
    failed_step: PipelineStep | None = None


class ContextChain:
    """Ordered, mergeable log of context items for one event."""

    def __init__(self, items: list[ContextItem] | None = None) -> None:
        self._items: list[ContextItem] = list(items or [])

    def push(self, item: ContextItem) -> ContextItem:
        """Merge ``item`` into the entry with the same (plugin_id, action) or append it.

        Error items always append. Returns the entry now held by the chain.
        """
        if not isinstance(item, ErrorContextItem):
            for index, existing in enumerate(self._items):
                if isinstance(existing, ErrorContextItem):
                    continue
                if existing.pair == item.pair:
                    merged = existing.model_copy(update=_fields_of(item))
                    self._items[index] = merged
                    return merged
        self._items.append(item)
        return item

    def append(self, item: ContextItem) -> ContextItem:
        """Append without merging."""
        self._items.append(item)
        return item

    @property
    def first(self) -> ContextItem | None:
        return self._items[0] if self._items else None

    @property
    def last(self) -> ContextItem | None:
        return self._items[-1] if self._items else None

    def errors(self) -> list[ErrorContextItem]:
        return [item for item in self._items if isinstance(item, ErrorContextItem)]

    def render(self) -> list[dict[str, Any]]:
        return [item.render() for item in self._items]

    def __iter__(self) -> Iterator[ContextItem]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> ContextItem:
        return self._items[index]

    def __repr__(self) -> str:
        return f"ContextChain({[item.pair for item in self._items]!r})"


def _fields_of(item: ContextItem) -> dict[str, Any]:
    """Field-name keyed values of an item, extras included."""
    values = {name: getattr(item, name) for name in type(item).model_fields}
    values.update(item.model_extra or {})
    return values


ResponseHandler = Callable[[Any], Awaitable[None]]


@dataclass
class PlatformContext:
    """Platform adapter state that travels with an event."""

    platform: str
    response_handler: ResponseHandler | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class AgentContext:
    """Everything the runtime knows about one event.

    Owned by the event queue while enqueued and by the evaluation loop while
    it is the current event; never shared between the two.
    """

    context_chain: ContextChain
    conversation_id: str | None = None
    platform_context: PlatformContext | None = None
    queue: EventQueue | None = None
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    inbound_stored: bool = False


def get_user_input(context: AgentContext) -> UserInputContext | None:
    """Return the user input that originated the event: the first chain item, if it is one."""
    first = context.context_chain.first
    return first if isinstance(first, UserInputContext) else None
