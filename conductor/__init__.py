"""Conductor: plan-and-execute agent runtime.

Events are planned into pipelines of plugin actions by a language model,
executed step by step, and re-planned after every step when needed.
"""

from conductor.capabilities import (
    IMAGE_GENERATION_CAPABILITY,
    TEXT_GENERATION_CAPABILITY,
    ModelManager,
)
from conductor.config import Settings, get_settings
from conductor.exceptions import ConductorError
from conductor.pipeline import (
    AgentContext,
    ContextChain,
    ContextItem,
    ErrorContextItem,
    PipelineModification,
    PipelineStep,
    PlatformContext,
    UserInputContext,
)
from conductor.pipeline.engine import PipelineEngine
from conductor.pipeline.retrieval import ObjectRetriever, RetrievalResult
from conductor.plugins import PluginRegistry, TextGenerationPlugin, TimePlugin
from conductor.providers import (
    Capability,
    Executor,
    MemoryProvider,
    ModelProvider,
    ModelRequestConfig,
    Plugin,
    PluginResult,
    Trigger,
    TriggerContext,
)
from conductor.result import ErrorKind, Result
from conductor.runtime import EventQueue, EvaluationLoop, LoopState, MemoryManager, Runtime

__version__ = "0.1.0"

__all__ = [
    "AgentContext",
    "Capability",
    "ConductorError",
    "ContextChain",
    "ContextItem",
    "ErrorContextItem",
    "ErrorKind",
    "EvaluationLoop",
    "EventQueue",
    "Executor",
    "IMAGE_GENERATION_CAPABILITY",
    "LoopState",
    "MemoryManager",
    "MemoryProvider",
    "ModelManager",
    "ModelProvider",
    "ModelRequestConfig",
    "ObjectRetriever",
    "PipelineEngine",
    "PipelineModification",
    "PipelineStep",
    "PlatformContext",
    "Plugin",
    "PluginRegistry",
    "PluginResult",
    "Result",
    "RetrievalResult",
    "Runtime",
    "Settings",
    "TEXT_GENERATION_CAPABILITY",
    "TextGenerationPlugin",
    "TimePlugin",
    "Trigger",
    "TriggerContext",
    "UserInputContext",
    "get_settings",
]
