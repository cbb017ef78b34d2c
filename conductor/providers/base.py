"""Abstract base classes for model providers."""

from __future__ import annotations

import logging
from abc import ABC
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any

from pydantic import BaseModel, ConfigDict, TypeAdapter
from pydantic.alias_generators import to_camel


class ModelRequestConfig(BaseModel):
    """Per-call options forwarded to a capability's execute function."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    temperature: float | None = None
    max_tokens: int | None = None
    stop_sequences: list[str] | None = None


CapabilityFn = Callable[[Any, ModelRequestConfig | None], Awaitable[Any]]


@dataclass
class Capability:
    """A named operation a provider implements, with validated input and output.

    ``input_schema`` and ``output_schema`` are any type pydantic can validate
    (``str``, ``list[str]``, a ``BaseModel`` subclass, ...).
    """

    id: str
    execute: CapabilityFn
    input_schema: Any = str
    output_schema: Any = str
    name: str = ""
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @cached_property
    def input_adapter(self) -> TypeAdapter[Any]:
        return TypeAdapter(self.input_schema)

    @cached_property
    def output_adapter(self) -> TypeAdapter[Any]:
        return TypeAdapter(self.output_schema)


class ModelProvider(ABC):
    """Base class for model providers (text generation, image generation, ...).

    Subclasses call :meth:`add_capability` in their constructor for every
    capability they expose and may override :meth:`init` and
    :meth:`check_health`. ``check_health`` must raise on failure.
    """

    def __init__(self, id: str, name: str = "", description: str = "") -> None:
        self.id = id
        self.name = name or id
        self.description = description
        self._capabilities: dict[str, Capability] = {}

    @property
    def logger(self) -> logging.Logger:
        return logging.getLogger(f"providers.{self.id}")

    def add_capability(self, capability: Capability) -> None:
        self._capabilities[capability.id] = capability

    def get_capabilities(self) -> list[Capability]:
        return list(self._capabilities.values())

    def get_capability(self, capability_id: str) -> Capability | None:
        return self._capabilities.get(capability_id)

    async def init(self) -> None:
        """Prepare clients/connections. Default: nothing to do."""
        return None

    async def check_health(self) -> None:
        """Raise if the provider cannot serve requests. Default: healthy."""
        return None
