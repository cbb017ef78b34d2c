"""Structured object retrieval from the text-generation capability.

The model is asked for JSON matching a schema. Each response is extracted,
parsed and validated; on failure the model is asked again with the previous
response and the error, up to a fixed number of attempts. A value is only
ever returned if it validated against the schema.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter, ValidationError

from conductor.capabilities.constants import TEXT_GENERATION_CAPABILITY
from conductor.capabilities.manager import ModelManager
from conductor.exceptions import ObjectRetrievalError
from conductor.pipeline.templates import (
    extract_json,
    format_schema,
    generate_object_template,
    generate_retry_template,
)
from conductor.providers.base import ModelRequestConfig
from conductor.result import Result
from conductor.telemetry import EventSink, get_event_sink

logger = logging.getLogger("retrieval")

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3


@dataclass(frozen=True)
class RetrievalResult(Generic[T]):
    """A validated value plus how many attempts it took."""

    value: T
    attempts: int
    raw_response: str


class ObjectRetriever:
    """Bounded-retry structured output on top of a :class:`ModelManager`."""

    def __init__(
        self,
        models: ModelManager,
        max_retries: int = DEFAULT_MAX_RETRIES,
        event_sink: EventSink | None = None,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._models = models
        self._max_retries = max_retries
        self._event_sink = event_sink or get_event_sink()

    @property
    def max_retries(self) -> int:
        return self._max_retries

    async def retrieve(
        self,
        schema: Any,
        prompt: str,
        config: ModelRequestConfig | None = None,
        max_retries: int | None = None,
    ) -> RetrievalResult[Any]:
        """Ask the model for a value conforming to ``schema``.

        Raises:
            ObjectRetrievalError: No conforming value after ``max_retries`` attempts.
                Chained to the last model, parse or validation error.
        """
        bound = max_retries if max_retries is not None else self._max_retries
        if bound < 1:
            raise ValueError("max_retries must be at least 1")

        adapter: TypeAdapter[Any] = TypeAdapter(schema)
        schema_json = format_schema(schema)

        last_response: str | None = None
        last_error = ""
        last_exc: Exception | None = None

        for attempt in range(1, bound + 1):
            if attempt == 1:
                request = generate_object_template(schema_json, prompt)
            else:
                request = generate_retry_template(
                    schema_json, prompt, last_response or "", last_error
                )

            try:
                response = await self._models.execute(TEXT_GENERATION_CAPABILITY, request, config)
            except Exception as exc:
                last_exc, last_error = exc, str(exc)
                self._attempt_failed(attempt, bound, "generation", last_error)
                continue

            last_response = response if isinstance(response, str) else str(response)

            try:
                payload = json.loads(extract_json(last_response))
                value = adapter.validate_python(payload)
            except json.JSONDecodeError as exc:
                last_exc, last_error = exc, f"Invalid JSON: {exc}"
                self._attempt_failed(attempt, bound, "parse", last_error)
                continue
            except ValidationError as exc:
                last_exc, last_error = exc, str(exc)
                self._attempt_failed(attempt, bound, "validation", last_error)
                continue

            self._event_sink.try_emit(
                type="retrieval.succeeded",
                data={"attempts": attempt},
            )
            logger.debug(
                "parsed object from model response",
                extra={"service": "retrieval", "attempt": attempt, "max_retries": bound},
            )
            return RetrievalResult(value=value, attempts=attempt, raw_response=last_response)

        raise ObjectRetrievalError(bound, last_error, last_response) from last_exc

    async def get_object(
        self,
        schema: Any,
        prompt: str,
        config: ModelRequestConfig | None = None,
        max_retries: int | None = None,
    ) -> Any:
        result = await self.retrieve(schema, prompt, config, max_retries)
        return result.value

    async def try_get_object(
        self,
        schema: Any,
        prompt: str,
        config: ModelRequestConfig | None = None,
        max_retries: int | None = None,
    ) -> Result[Any]:
        """Like :meth:`get_object` but returns a :class:`Result` instead of raising."""
        try:
            value = await self.get_object(schema, prompt, config, max_retries)
        except ObjectRetrievalError as exc:
            return Result.from_exception(exc)
        return Result.success(value)

    def _attempt_failed(self, attempt: int, bound: int, phase: str, error: str) -> None:
        self._event_sink.try_emit(
            type="retrieval.attempt.failed",
            data={"attempt": attempt, "max_retries": bound, "phase": phase, "error": error},
        )
        logger.warning(
            "object retrieval attempt failed",
            extra={
                "service": "retrieval",
                "attempt": attempt,
                "max_retries": bound,
                "phase": phase,
                "error": error,
            },
        )
