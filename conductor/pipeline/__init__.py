"""Context chain, pipeline types and planning prompts.

Retrieval and plan generation live in :mod:`conductor.pipeline.retrieval`
and :mod:`conductor.pipeline.engine`.
"""

from conductor.pipeline.context import (
    AgentContext,
    ContextChain,
    ContextItem,
    ConversationMessage,
    ErrorContextItem,
    PlatformContext,
    UserInputContext,
    get_user_input,
)
from conductor.pipeline.types import Pipeline, PipelineModification, PipelineStep

__all__ = [
    "AgentContext",
    "ContextChain",
    "ContextItem",
    "ConversationMessage",
    "ErrorContextItem",
    "Pipeline",
    "PipelineModification",
    "PipelineStep",
    "PlatformContext",
    "UserInputContext",
    "get_user_input",
]
