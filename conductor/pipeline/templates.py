"""Prompt templates for structured output, planning and plan modification."""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import TypeAdapter

from conductor.pipeline.types import PipelineGenerationContext, PipelineModificationContext

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_CLOSERS = {"{": "}", "[": "]"}


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def format_schema(schema: Any) -> str:
    """Render the JSON schema of any pydantic-validatable type."""
    return _dump(TypeAdapter(schema).json_schema(by_alias=True))


def extract_json(text: str) -> str:
    """Pull the JSON payload out of a model response.

    A fenced code block wins; otherwise the outermost balanced ``{...}`` or
    ``[...]`` span is returned. Brackets inside string literals are ignored.
    Text without any bracket is returned stripped so the parser reports the
    real problem.
    """
    fenced = _FENCE_RE.search(text)
    if fenced:
        return fenced.group(1).strip()

    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return text.strip()
    start = min(starts)

    stack: list[str] = []
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif stack and char == stack[-1]:
            stack.pop()
            if not stack:
                return text[start : index + 1]

    return text[start:].strip()


def generate_object_template(schema: str, prompt: str) -> str:
    return f"""Generate a JSON object that matches the following schema.

Schema:
{schema}

Request:
{prompt}

Respond with the JSON object only. Do not add explanations, comments or markdown."""


def generate_retry_template(schema: str, prompt: str, last_response: str, error: str) -> str:
    return f"""Your previous response could not be used. Generate a JSON object that matches the schema.

Schema:
{schema}

Request:
{prompt}

Previous response:
{last_response}

Error:
{error}

Fix the error and respond with the corrected JSON object only. Do not add explanations, comments or markdown."""


def generate_pipeline_template(context: PipelineGenerationContext) -> str:
    """Planning prompt: choose the ordered plugin actions that handle the event."""
    plugins = _dump([p.model_dump(by_alias=True) for p in context.available_plugins])
    current = context.current_context
    return f"""You are the planner of an agent runtime. Decide which plugin actions to run,
in order, to handle the current event.

Available plugins and their executors:
{plugins}

Current context:
Platform: {current.platform}
Message: {current.message}

Conversation history (oldest first):
{_dump(current.conversation_history)}

Context chain so far:
{_dump(context.context_chain)}

Rules:
- Only use plugin ids and executor names listed above.
- Each step is an object with "pluginId" and "action" (the executor name).
- Steps run strictly in the order given; later steps see the results of earlier ones.
- If the user should receive a reply, end with the step that produces it.
- Return an empty list if nothing needs to happen.

Return a JSON array of steps."""


def generate_pipeline_modification_template(context: PipelineModificationContext) -> str:
    """Prompt asking whether the remaining plan should change after a step."""
    plugins = _dump([p.model_dump(by_alias=True) for p in context.available_plugins])
    pipeline = _dump([step.model_dump(by_alias=True) for step in context.pipeline])
    return f"""You are monitoring the execution of a plan in an agent runtime.

Step just executed:
{_dump(context.current_step.model_dump(by_alias=True))}

Full plan (steps up to and including the one above have already run):
{pipeline}

Available plugins and their executors:
{plugins}

Context chain so far:
{_dump(context.context_chain)}

Decide whether the remaining steps should change given the latest results,
for example because a step failed or returned something unexpected.

Respond with a JSON object:
- "shouldModify": true only if the remaining steps must change
- "explanation": a short reason
- "modifiedSteps": the complete list of steps to run next (objects with
  "pluginId" and "action"), or null when shouldModify is false"""
