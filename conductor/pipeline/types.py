"""Pipeline data types exchanged with the planning model."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PipelineStep(_CamelModel):
    """One step of a plan: run ``action`` on plugin ``plugin_id``."""

    plugin_id: str = Field(min_length=1)
    action: str = Field(min_length=1)

    def __str__(self) -> str:
        return f"{self.plugin_id}:{self.action}"


Pipeline = list[PipelineStep]


class PipelineModification(_CamelModel):
    """The planner's verdict on whether the remaining plan should change."""

    should_modify: bool
    explanation: str = ""
    modified_steps: list[PipelineStep] | None = None


class ExecutorDescriptor(_CamelModel):
    name: str
    description: str = ""


class PluginDescriptor(_CamelModel):
    """What the planner is told about a registered plugin."""

    id: str
    name: str
    description: str = ""
    executors: list[ExecutorDescriptor] = Field(default_factory=list)


class CurrentContext(_CamelModel):
    platform: str
    message: str
    conversation_history: list[dict[str, Any]] = Field(default_factory=list)


class PipelineGenerationContext(_CamelModel):
    """Everything the planning template renders when generating a plan."""

    context_chain: list[dict[str, Any]]
    available_plugins: list[PluginDescriptor]
    current_context: CurrentContext


class PipelineModificationContext(_CamelModel):
    """Everything the modification template renders after a step has run."""

    context_chain: list[dict[str, Any]]
    current_step: PipelineStep
    pipeline: list[PipelineStep]
    available_plugins: list[PluginDescriptor]
