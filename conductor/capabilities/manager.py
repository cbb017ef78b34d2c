"""Model manager: capability routing across registered model providers.

Usage:
    manager = ModelManager().register_providers(openai, local)
    manager.register_alias_groups([["text-generation", "chat"]])
    await manager.init()
    await manager.check_health()

    text = await manager.execute("chat", "Say hi", ModelRequestConfig(temperature=0.2))
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from conductor.capabilities.registry import CapabilityRegistry
from conductor.exceptions import (
    CapabilityNotFoundError,
    CapabilityValidationError,
    DuplicateProviderError,
    InvalidProviderError,
    NoProviderError,
    UnknownAliasTargetError,
    UnknownProviderError,
)
from conductor.providers.base import ModelProvider, ModelRequestConfig
from conductor.result import Result
from conductor.telemetry import EventSink, get_event_sink

logger = logging.getLogger("models")

_PROVIDER_METHODS = ("get_capabilities", "get_capability", "init", "check_health")


def _validation_errors(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors(include_url=False)
    ]


class ModelManager:
    """Routes capability calls to model providers, resolving aliases first."""

    def __init__(self, event_sink: EventSink | None = None) -> None:
        self._providers: dict[str, ModelProvider] = {}
        self._registry = CapabilityRegistry()
        self._aliases: dict[str, str] = {}
        self._event_sink = event_sink or get_event_sink()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_provider(self, provider: ModelProvider) -> ModelManager:
        """Register a provider and every capability it exposes.

        The first provider registered for a capability becomes its default.

        Raises:
            InvalidProviderError: If the object does not satisfy the provider contract.
            DuplicateProviderError: If a provider with the same id is already registered.
        """
        provider_id = getattr(provider, "id", None)
        if not isinstance(provider_id, str) or not provider_id:
            raise InvalidProviderError(
                f"Model provider {type(provider).__name__} is missing a non-empty 'id'"
            )
        missing = [m for m in _PROVIDER_METHODS if not callable(getattr(provider, m, None))]
        if missing:
            raise InvalidProviderError(
                f"Model provider '{provider_id}' does not implement: {', '.join(missing)}",
                details={"provider_id": provider_id, "missing": missing},
            )
        if provider_id in self._providers:
            raise DuplicateProviderError(provider_id)

        self._providers[provider_id] = provider

        for capability in provider.get_capabilities():
            self._registry.register_capability(provider_id, capability.id)

            if self._registry.get_default_provider(capability.id) is None:
                self._registry.set_default_provider(capability.id, provider_id)
                self._event_sink.try_emit(
                    type="model.capability.default.set",
                    data={"provider": provider_id, "capability": capability.id},
                )
                logger.debug(
                    f"set model provider {provider_id} as default for capability \"{capability.id}\"",
                    extra={"service": "models", "provider": provider_id, "capability": capability.id},
                )

        self._event_sink.try_emit(
            type="model.provider.registered",
            data={
                "provider": provider_id,
                "capabilities": [c.id for c in provider.get_capabilities()],
            },
        )
        logger.debug(
            f"model provider \"{provider_id}\" registered successfully",
            extra={"service": "models", "provider": provider_id},
        )
        return self

    def register_providers(self, *providers: ModelProvider) -> ModelManager:
        for provider in providers:
            self.register_provider(provider)
        return self

    def register_alias(self, alias: str, canonical_id: str) -> None:
        """Register ``alias`` as another name for ``canonical_id``.

        Raises:
            UnknownAliasTargetError: If no provider supplies ``canonical_id``.
        """
        if not self._registry.has_capability(canonical_id):
            raise UnknownAliasTargetError(alias, canonical_id)

        self._aliases[alias] = canonical_id
        self._event_sink.try_emit(
            type="model.capability.alias.registered",
            data={"alias": alias, "canonical_id": canonical_id},
        )
        logger.debug(
            f"registered capability alias \"{alias}\" for \"{canonical_id}\"",
            extra={"service": "models", "capability": canonical_id},
        )

    def register_alias_groups(self, groups: Iterable[Iterable[str]]) -> ModelManager:
        """Collapse each group of interchangeable ids onto one canonical id.

        The canonical id is the first member already backed by a registered
        provider; every other member becomes an alias of it. Groups with no
        backed member are skipped.
        """
        for group in groups:
            members = [m for m in dict.fromkeys(group) if m]
            canonical = next((m for m in members if self._registry.has_capability(m)), None)
            if canonical is None:
                logger.debug(
                    "skipping capability alias group with no backing provider",
                    extra={"service": "models", "metadata": {"group": members}},
                )
                continue
            for member in members:
                if member != canonical:
                    self.register_alias(member, canonical)
        return self

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def resolve(self, capability_id: str) -> str:
        """Return the canonical capability id for ``capability_id``."""
        return self._aliases.get(capability_id, capability_id)

    def has_capability(self, capability_id: str) -> bool:
        return self._registry.has_capability(self.resolve(capability_id))

    def get_available_capabilities(self) -> list[str]:
        return self._registry.get_all_capabilities()

    def get_providers_with_capability(self, capability_id: str) -> list[str]:
        return self._registry.get_providers_with_capability(self.resolve(capability_id))

    def set_default_provider(self, capability_id: str, provider_id: str) -> None:
        self._registry.set_default_provider(self.resolve(capability_id), provider_id)

    def get_default_provider(self, capability_id: str) -> str | None:
        return self._registry.get_default_provider(self.resolve(capability_id))

    @property
    def providers(self) -> list[ModelProvider]:
        return list(self._providers.values())

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        capability_id: str,
        input: Any,
        config: ModelRequestConfig | None = None,
        provider_id: str | None = None,
    ) -> Any:
        """Execute a capability with the given input.

        Raises:
            NoProviderError: No provider given and no default registered.
            UnknownProviderError: The chosen provider is not registered.
            CapabilityNotFoundError: The chosen provider lacks the capability.
            CapabilityValidationError: Input or output failed schema validation.
        """
        resolved_id = self.resolve(capability_id)

        effective_provider_id = provider_id or self._registry.get_default_provider(resolved_id)
        if not effective_provider_id:
            raise NoProviderError(resolved_id)

        provider = self._providers.get(effective_provider_id)
        if provider is None:
            raise UnknownProviderError(effective_provider_id)

        capability = provider.get_capability(resolved_id)
        if capability is None:
            raise CapabilityNotFoundError(resolved_id, provider.id)

        try:
            validated_input = capability.input_adapter.validate_python(input)
        except ValidationError as exc:
            raise CapabilityValidationError(resolved_id, "input", _validation_errors(exc)) from exc

        result = await capability.execute(validated_input, config)

        try:
            return capability.output_adapter.validate_python(result)
        except ValidationError as exc:
            raise CapabilityValidationError(resolved_id, "output", _validation_errors(exc)) from exc

    async def try_execute(
        self,
        capability_id: str,
        input: Any,
        config: ModelRequestConfig | None = None,
        provider_id: str | None = None,
    ) -> Result[Any]:
        """Like :meth:`execute` but returns a :class:`Result` instead of raising."""
        try:
            value = await self.execute(capability_id, input, config, provider_id)
        except Exception as exc:
            return Result.from_exception(exc)
        return Result.success(value)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Initialize all providers concurrently. Failures are reported, not raised."""

        async def _init(provider: ModelProvider) -> None:
            try:
                await provider.init()
            except Exception as exc:
                self._event_sink.try_emit(
                    type="model.provider.init.failed",
                    data={"provider": provider.id, "error": str(exc)},
                )
                logger.error(
                    f"model provider initialization failed for \"{provider.id}\"",
                    extra={"service": "models", "provider": provider.id, "error": str(exc)},
                )
                return
            logger.debug(
                f"model provider initialized successfully for \"{provider.id}\"",
                extra={"service": "models", "provider": provider.id},
            )

        await asyncio.gather(*(_init(p) for p in self._providers.values()))

    async def check_health(self) -> None:
        """Run every provider health check concurrently; the first failure is raised."""

        async def _check(provider: ModelProvider) -> None:
            try:
                await provider.check_health()
            except Exception as exc:
                self._event_sink.try_emit(
                    type="model.healthcheck.failed",
                    data={"provider": provider.id, "error": str(exc)},
                )
                logger.error(
                    f"health check for model provider {provider.id} failed",
                    extra={"service": "models", "provider": provider.id, "error": str(exc)},
                )
                raise
            self._event_sink.try_emit(
                type="model.healthcheck.passed",
                data={"provider": provider.id},
            )

        await asyncio.gather(*(_check(p) for p in self._providers.values()))
