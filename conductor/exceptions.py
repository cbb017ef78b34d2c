"""Custom exceptions for the conductor runtime.

This module defines runtime exceptions with structured error codes and
metadata. Raised exceptions are reserved for configuration/startup problems
and for failures the evaluation loop does not recover from; recoverable
paths additionally expose a :class:`conductor.result.Result` API.

Exception Hierarchy:
- ConductorError (base)
  ├── ConfigurationError
  │   ├── MissingCapabilityError
  │   ├── PluginIdCollisionError
  │   ├── InvalidPluginError
  │   ├── InvalidProviderError
  │   ├── DuplicateProviderError
  │   └── UnknownAliasTargetError
  ├── NotFoundError
  │   └── PluginNotFoundError
  ├── CapabilityError
  │   ├── NoProviderError
  │   ├── UnknownProviderError
  │   ├── CapabilityNotFoundError
  │   └── CapabilityValidationError
  ├── ObjectRetrievalError
  └── RuntimeStateError

Attributes:
    code: Machine-readable error code (e.g., "PLUGIN_NOT_FOUND")
    message: Human-readable error message
    details: Additional context for debugging
    retryable: Whether the operation can be retried
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal


class ConductorError(Exception):
    """Base exception for runtime errors.

    Attributes:
        code: Machine-readable error code
        message: Human-readable error message
        details: Additional context for debugging
        retryable: Whether the operation can be retried
        timestamp: When the error occurred
    """

    code: str = "CONDUCTOR_ERROR"
    message: str = "An unexpected error occurred"
    retryable: bool = False

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool | None = None,
    ) -> None:
        """Initialize error with optional message and details."""
        self.message = message or self.message
        self.details = details or {}
        if retryable is not None:
            self.retryable = retryable
        self.timestamp = datetime.now(UTC)
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "retryable": self.retryable,
                "timestamp": self.timestamp.isoformat(),
            }
        }

    def __str__(self) -> str:
        """String representation with code."""
        return f"[{self.code}] {self.message}"


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationError(ConductorError):
    """Base exception for configuration errors. Fatal at startup."""

    code = "CONFIGURATION_ERROR"
    message = "Invalid configuration"


class MissingCapabilityError(ConfigurationError):
    """Raised when a required capability has no backing model provider."""

    code = "MISSING_CAPABILITY"
    message = "Required capability is not available"

    def __init__(
        self,
        capability_id: str,
        required_by: str = "runtime",
        available: list[str] | None = None,
    ) -> None:
        self.capability_id = capability_id
        self.required_by = required_by
        if required_by == "runtime":
            message = (
                f"{capability_id} capability by a model provider is required "
                "for core runtime operations"
            )
        else:
            message = (
                f"plugin {required_by} specified a required capability "
                f"{capability_id} that is not available"
            )
        super().__init__(
            message=message,
            details={
                "capability_id": capability_id,
                "required_by": required_by,
                "available_capabilities": available or [],
            },
        )


class PluginIdCollisionError(ConfigurationError):
    """Raised when two plugins are registered under the same id."""

    code = "PLUGIN_ID_COLLISION"
    message = "Plugin id collision"

    def __init__(self, plugin_id: str, registered: list[str]) -> None:
        self.plugin_id = plugin_id
        self.registered = list(registered)
        super().__init__(
            message=(
                f"Plugin ID collision: {plugin_id} is already registered.\n"
                f"Currently registered plugins: {', '.join(self.registered)}"
            ),
            details={"id": plugin_id, "registered_plugins": self.registered},
        )


class InvalidPluginError(ConfigurationError):
    """Raised when a plugin does not satisfy the plugin contract."""

    code = "INVALID_PLUGIN"
    message = "Plugin validation failed"


class InvalidProviderError(ConfigurationError):
    """Raised when a model provider does not satisfy the provider contract."""

    code = "INVALID_PROVIDER"
    message = "Model provider validation failed"


class DuplicateProviderError(ConfigurationError):
    """Raised when trying to register a provider with an id that's already taken."""

    code = "DUPLICATE_PROVIDER"
    message = "Model provider already registered"

    def __init__(self, provider_id: str) -> None:
        self.provider_id = provider_id
        super().__init__(
            message=f"Model provider '{provider_id}' is already registered",
            details={"provider_id": provider_id},
        )


class UnknownAliasTargetError(ConfigurationError):
    """Raised when an alias points at a capability no provider supplies."""

    code = "UNKNOWN_ALIAS_TARGET"
    message = "Alias target capability not found"

    def __init__(self, alias: str, canonical_id: str) -> None:
        self.alias = alias
        self.canonical_id = canonical_id
        super().__init__(
            message=f"Capability {canonical_id} not found",
            details={"alias": alias, "canonical_id": canonical_id},
        )


# =============================================================================
# Lookups
# =============================================================================


class NotFoundError(ConductorError):
    """Base exception for lookup failures."""

    code = "NOT_FOUND"
    message = "Resource not found"

    def __init__(
        self,
        resource: str,
        identifier: str,
        available: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.resource = resource
        self.identifier = identifier
        self.available = list(available or [])
        full_details: dict[str, Any] = {
            "resource": resource,
            "identifier": identifier,
            "available": self.available,
        }
        if details:
            full_details.update(details)
        super().__init__(
            message=f"{resource} {identifier} not found. Available: {', '.join(self.available)}",
            details=full_details,
        )


class PluginNotFoundError(NotFoundError):
    """Raised when a pipeline step names a plugin that is not registered."""

    code = "PLUGIN_NOT_FOUND"

    def __init__(self, plugin_id: str, available: list[str]) -> None:
        super().__init__(resource="Plugin", identifier=plugin_id, available=available)


# =============================================================================
# Capability routing
# =============================================================================


class CapabilityError(ConductorError):
    """Base exception for capability routing and execution errors."""

    code = "CAPABILITY_ERROR"
    message = "Capability execution failed"


class NoProviderError(CapabilityError):
    """Raised when no provider is given and no default exists."""

    code = "NO_PROVIDER"

    def __init__(self, capability_id: str) -> None:
        self.capability_id = capability_id
        super().__init__(
            message=(
                "No model specified and no default model set for "
                f"capability {capability_id}"
            ),
            details={"capability_id": capability_id},
        )


class UnknownProviderError(CapabilityError):
    """Raised when the selected provider id is not registered."""

    code = "UNKNOWN_PROVIDER"

    def __init__(self, provider_id: str) -> None:
        self.provider_id = provider_id
        super().__init__(
            message=f"Unknown model: {provider_id}",
            details={"provider_id": provider_id},
        )


class CapabilityNotFoundError(CapabilityError):
    """Raised when the selected provider does not implement the capability."""

    code = "CAPABILITY_NOT_FOUND"

    def __init__(self, capability_id: str, provider_id: str) -> None:
        self.capability_id = capability_id
        self.provider_id = provider_id
        super().__init__(
            message=f"Capability {capability_id} not found on model {provider_id}",
            details={"capability_id": capability_id, "provider_id": provider_id},
        )


class CapabilityValidationError(CapabilityError):
    """Raised when capability input or output fails schema validation.

    Attributes:
        capability_id: The resolved capability id
        direction: "input" or "output"
        errors: Structured validation errors (pydantic ``errors()`` format)
    """

    code = "CAPABILITY_VALIDATION_ERROR"

    def __init__(
        self,
        capability_id: str,
        direction: Literal["input", "output"],
        errors: list[dict[str, Any]],
    ) -> None:
        self.capability_id = capability_id
        self.direction = direction
        self.errors = errors
        summary = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())) or '<root>'}: {err.get('msg', '')}"
            for err in errors
        )
        super().__init__(
            message=f"Invalid {direction} for capability {capability_id}: {summary}",
            details={
                "capability_id": capability_id,
                "direction": direction,
                "errors": errors,
            },
        )


# =============================================================================
# Structured output / runtime
# =============================================================================


class ObjectRetrievalError(ConductorError):
    """Raised when no schema-conforming object was produced within the retry bound."""

    code = "OBJECT_RETRIEVAL_FAILED"
    retryable = True

    def __init__(self, attempts: int, last_error: str, last_response: str | None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        self.last_response = last_response
        super().__init__(
            message=f"Failed to retrieve object after {attempts} attempt(s): {last_error}",
            details={
                "attempts": attempts,
                "last_error": last_error,
                "last_response": last_response,
            },
        )


class RuntimeStateError(ConductorError):
    """Raised when the runtime is started or stopped in the wrong state."""

    code = "RUNTIME_STATE_ERROR"
    message = "Runtime is not in a valid state for this operation"


__all__ = [
    "ConductorError",
    "ConfigurationError",
    "MissingCapabilityError",
    "PluginIdCollisionError",
    "InvalidPluginError",
    "InvalidProviderError",
    "DuplicateProviderError",
    "UnknownAliasTargetError",
    "NotFoundError",
    "PluginNotFoundError",
    "CapabilityError",
    "NoProviderError",
    "UnknownProviderError",
    "CapabilityNotFoundError",
    "CapabilityValidationError",
    "ObjectRetrievalError",
    "RuntimeStateError",
]
