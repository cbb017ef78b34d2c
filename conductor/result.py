"""Tagged result type for recoverable operations.

Capability execution, structured object retrieval and pipeline step
execution can all fail in ways the caller is expected to handle. Their
``try_*`` variants return a :class:`Result` instead of raising, mirroring the
ok/fail outputs used by pipeline stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from conductor.exceptions import (
    CapabilityNotFoundError,
    CapabilityValidationError,
    ConductorError,
    NoProviderError,
    ObjectRetrievalError,
    PluginNotFoundError,
    UnknownProviderError,
)

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Discriminator for recoverable failures."""

    NO_PROVIDER = "no_provider"
    UNKNOWN_PROVIDER = "unknown_provider"
    CAPABILITY_NOT_FOUND = "capability_not_found"
    VALIDATION = "validation"
    RETRIEVAL = "retrieval"
    PLUGIN_NOT_FOUND = "plugin_not_found"
    INVALID_STEP = "invalid_step"
    STEP_FAILED = "step_failed"
    EXECUTION = "execution"


_KIND_BY_ERROR: tuple[tuple[type[ConductorError], ErrorKind], ...] = (
    (NoProviderError, ErrorKind.NO_PROVIDER),
    (UnknownProviderError, ErrorKind.UNKNOWN_PROVIDER),
    (CapabilityNotFoundError, ErrorKind.CAPABILITY_NOT_FOUND),
    (CapabilityValidationError, ErrorKind.VALIDATION),
    (ObjectRetrievalError, ErrorKind.RETRIEVAL),
    (PluginNotFoundError, ErrorKind.PLUGIN_NOT_FOUND),
)


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a recoverable operation."""

    value: T | None = None
    error_kind: ErrorKind | None = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def fail(
        cls,
        kind: ErrorKind,
        error: str,
        details: dict[str, Any] | None = None,
    ) -> Result[T]:
        return cls(error_kind=kind, error=error, details=details or {})

    @classmethod
    def from_exception(cls, exc: Exception) -> Result[T]:
        """Classify an exception into a failed result."""
        for error_type, kind in _KIND_BY_ERROR:
            if isinstance(exc, error_type):
                return cls.fail(kind, exc.message, exc.details)
        return cls.fail(ErrorKind.EXECUTION, str(exc), {"error_type": type(exc).__name__})

    def unwrap(self) -> T:
        """Return the value or raise if this is a failure."""
        if not self.ok:
            raise ValueError(f"Result is a failure ({self.error_kind}): {self.error}")
        return self.value  # type: ignore[return-value]
