"""Pipeline generation and modification.

Plans are produced by the text-generation capability through the structured
retrieval protocol. Generation fails open (an empty plan) and modification
fails safe (keep the current plan), so a misbehaving planner never takes
the evaluation loop down.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

from conductor.pipeline.context import AgentContext, get_user_input
from conductor.pipeline.retrieval import ObjectRetriever
from conductor.pipeline.templates import (
    generate_pipeline_modification_template,
    generate_pipeline_template,
)
from conductor.pipeline.types import (
    CurrentContext,
    PipelineGenerationContext,
    PipelineModification,
    PipelineModificationContext,
    PipelineStep,
)
from conductor.plugins.registry import PluginRegistry
from conductor.providers.base import ModelRequestConfig
from conductor.telemetry import EventSink, get_event_sink

logger = logging.getLogger("pipeline")

DEFAULT_PLANNING_TEMPERATURE = 0.2

NO_MODIFICATION = PipelineModification(
    should_modify=False,
    explanation="Error evaluating pipeline modification",
    modified_steps=None,
)


class PipelineEngine:
    """Asks the planner for a plan and for changes to it while it runs."""

    def __init__(
        self,
        retriever: ObjectRetriever,
        plugins: PluginRegistry,
        temperature: float = DEFAULT_PLANNING_TEMPERATURE,
        event_sink: EventSink | None = None,
    ) -> None:
        self._retriever = retriever
        self._plugins = plugins
        self._temperature = temperature
        self._event_sink = event_sink or get_event_sink()

    @property
    def _config(self) -> ModelRequestConfig:
        return ModelRequestConfig(temperature=self._temperature)

    async def generate(self, context: AgentContext) -> list[PipelineStep]:
        """Produce a plan for the event. Returns ``[]`` on any failure."""
        user_input = get_user_input(context)
        platform = user_input.plugin_id if user_input else "unknown"
        message = user_input.raw_message if user_input else ""
        start = time.perf_counter()
        try:
            history = (
                [entry.model_dump() for entry in user_input.message_history] if user_input else []
            )
            generation_context = PipelineGenerationContext(
                context_chain=context.context_chain.render(),
                available_plugins=self._plugins.describe(),
                current_context=CurrentContext(
                    platform=platform,
                    message=message,
                    conversation_history=history,
                ),
            )
            template = generate_pipeline_template(generation_context)
            pipeline = await self._retriever.get_object(list[PipelineStep], template, self._config)
        except Exception as exc:
            self._event_sink.try_emit(
                type="pipeline.generation.failed",
                data={"platform": platform, "error": str(exc)},
            )
            logger.error(
                "pipeline generation failed",
                extra={
                    "service": "pipeline",
                    "platform": platform,
                    "error": str(exc),
                    "error_code": getattr(exc, "code", None),
                },
            )
            return []

        steps = [str(step) for step in pipeline]
        duration_ms = int((time.perf_counter() - start) * 1000)
        self._event_sink.try_emit(
            type="pipeline.generation.succeeded",
            data={"platform": platform, "steps": steps, "duration_ms": duration_ms},
        )
        logger.info(
            "pipeline generated",
            extra={"service": "pipeline", "steps": steps, "duration_ms": duration_ms},
        )
        return pipeline

    async def evaluate_modification(
        self,
        context: AgentContext,
        current_step: PipelineStep,
        pipeline: Sequence[PipelineStep],
    ) -> PipelineModification:
        """Ask whether the rest of the plan should change. Never raises."""
        try:
            modification_context = PipelineModificationContext(
                context_chain=context.context_chain.render(),
                current_step=current_step,
                pipeline=list(pipeline),
                available_plugins=self._plugins.describe(),
            )
            template = generate_pipeline_modification_template(modification_context)
            modification = await self._retriever.get_object(
                PipelineModification, template, self._config
            )
        except Exception as exc:
            self._event_sink.try_emit(
                type="pipeline.modification.failed",
                data={"step": str(current_step), "error": str(exc)},
            )
            logger.error(
                "error evaluating pipeline modification",
                extra={"service": "pipeline", "action": current_step.action, "error": str(exc)},
            )
            return NO_MODIFICATION.model_copy()

        logger.debug(
            "pipeline modification evaluated",
            extra={
                "service": "pipeline",
                "status": "modify" if modification.should_modify else "keep",
                "explanation": modification.explanation,
            },
        )
        return modification

    @staticmethod
    def splice(
        pipeline: Sequence[PipelineStep],
        index: int,
        modified_steps: Sequence[PipelineStep],
    ) -> list[PipelineStep]:
        """Keep steps ``0..index`` and replace everything after with ``modified_steps``."""
        if index < 0 or index >= len(pipeline):
            raise IndexError(f"step index {index} out of range for pipeline of {len(pipeline)}")
        return list(pipeline[: index + 1]) + list(modified_steps)
