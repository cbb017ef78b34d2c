"""Capability registry: which providers implement which capability.

The registry only tracks identifiers. Provider instances live in
:class:`conductor.capabilities.manager.ModelManager`; alias resolution also
happens there, before any lookup reaches this registry.
"""


class CapabilityRegistry:
    """Maps capability ids to provider ids and tracks a default provider per capability."""

    def __init__(self) -> None:
        # dict keys keep registration order; values are used as an ordered set
        self._providers: dict[str, dict[str, None]] = {}
        self._defaults: dict[str, str] = {}

    def register_capability(self, provider_id: str, capability_id: str) -> None:
        """Record that ``provider_id`` implements ``capability_id``."""
        self._providers.setdefault(capability_id, {})[provider_id] = None

    def has_capability(self, capability_id: str) -> bool:
        return bool(self._providers.get(capability_id))

    def get_providers_with_capability(self, capability_id: str) -> list[str]:
        return list(self._providers.get(capability_id, {}))

    def get_default_provider(self, capability_id: str) -> str | None:
        return self._defaults.get(capability_id)

    def set_default_provider(self, capability_id: str, provider_id: str) -> None:
        """Set the default provider for a capability.

        Raises:
            KeyError: If the provider does not implement the capability.
        """
        if provider_id not in self._providers.get(capability_id, {}):
            raise KeyError(
                f"Provider '{provider_id}' does not implement capability '{capability_id}'. "
                f"Providers: {self.get_providers_with_capability(capability_id)}"
            )
        self._defaults[capability_id] = provider_id

    def get_all_capabilities(self) -> list[str]:
        return [capability_id for capability_id, providers in self._providers.items() if providers]
