"""Collaborator contracts: model providers, memory providers and plugins.

Stub implementations for tests and development live in
:mod:`conductor.providers.stub`.
"""

from conductor.providers.base import Capability, ModelProvider, ModelRequestConfig
from conductor.providers.memory import MemoryProvider
from conductor.providers.plugin import (
    Executor,
    Plugin,
    PluginResult,
    Trigger,
    TriggerContext,
)

__all__ = [
    "Capability",
    "Executor",
    "MemoryProvider",
    "ModelProvider",
    "ModelRequestConfig",
    "Plugin",
    "PluginResult",
    "Trigger",
    "TriggerContext",
]
