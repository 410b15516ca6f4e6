"""Schema-guided extraction with validation feedback retries.

`Instructor.parse` runs attempts until the model's answer validates against
the request schema or the retry budget is spent. `Instructor.parse_stream`
runs the same protocol while reporting progress as streaming events.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from pydantic import ValidationError as PydanticValidationError

from schemas.parsing import (
    INTERNAL_VALIDATION_ERROR,
    ParsingRequest,
    ParsingResult,
    ValidationError,
)
from schemas.streaming import (
    AttemptFailed,
    AttemptStarted,
    FinalResult,
    RawChunk,
    Snapshot,
    StreamError,
    StreamingEvent,
)
from services.instructor.exceptions import InstructorError
from services.instructor.interfaces import LlmClient, SchemaValidator
from services.instructor.llm_client import extract_answer
from services.instructor.prompts import build_prompt, build_retry_prompt
from services.instructor.schema_validator import JsonSchemaValidator


logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_SNAPSHOT_THRESHOLD = 256


def _describe_parse_failure(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors(include_url=False)[:3]:
        loc = ".".join(str(p) for p in err.get("loc", ())) or "root"
        parts.append(f"{loc}: {err.get('msg', '')}")
    return "; ".join(parts)


class Instructor:
    """Drives a language model until its answer satisfies a JSON Schema."""

    def __init__(
        self,
        llm_client: LlmClient,
        schema_validator: SchemaValidator | None = None,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        snapshot_threshold: int = DEFAULT_SNAPSHOT_THRESHOLD,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if snapshot_threshold < 1:
            raise ValueError("snapshot_threshold must be >= 1")
        self._client = llm_client
        self._validator = schema_validator or JsonSchemaValidator()
        self.max_retries = max_retries
        self.snapshot_threshold = snapshot_threshold

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def _prompt_for(
        self,
        attempt: int,
        base_prompt: str,
        last_response: str | None,
        errors: list[ValidationError],
    ) -> str:
        if attempt == 1:
            return base_prompt
        return build_retry_prompt(base_prompt, last_response, errors)

    @staticmethod
    def _parse_response(text: str) -> ParsingResult:
        """Parse model text into a ParsingResult; raises on malformed output."""
        return ParsingResult.model_validate_json(text)

    @staticmethod
    def _try_parse(text: str) -> ParsingResult | None:
        try:
            return ParsingResult.model_validate_json(text)
        except PydanticValidationError:
            return None

    def _validate(
        self, request: ParsingRequest, parsed: ParsingResult
    ) -> list[ValidationError]:
        """Validate the value-only document of `parsed` against the request schema."""
        try:
            return list(
                self._validator.validate(
                    request.json_schema, parsed.value_document_json()
                )
            )
        except Exception as e:  # noqa: BLE001 - reported as an attempt error
            logger.warning("Schema validator raised: %s", e)
            return [
                ValidationError(
                    path="$",
                    message=f"Validation error: {e}",
                    kind=INTERNAL_VALIDATION_ERROR,
                )
            ]

    def _evaluate(
        self, request: ParsingRequest, response: str
    ) -> tuple[ParsingResult | None, list[ValidationError]]:
        try:
            parsed = self._parse_response(response)
        except PydanticValidationError as e:
            return None, [ValidationError.json_malformed(_describe_parse_failure(e))]
        return parsed, self._validate(request, parsed)

    async def parse(self, request: ParsingRequest) -> ParsingResult:
        """Extract fields from `request`, retrying with validation feedback.

        Returns the first result whose values validate. When every attempt
        fails, returns a result with no fields and the last attempt's errors.
        Client failures propagate to the caller.
        """
        base_prompt = build_prompt(request)
        errors: list[ValidationError] = []
        last_response: str | None = None

        for attempt in range(1, self.max_attempts + 1):
            prompt = self._prompt_for(attempt, base_prompt, last_response, errors)
            last_response = await self._client.complete(prompt)
            parsed, errors = self._evaluate(request, last_response)
            if parsed is not None and not errors:
                logger.info("Extraction succeeded on attempt %d", attempt)
                return parsed
            logger.info(
                "Extraction attempt %d/%d failed with %d error(s): %s",
                attempt,
                self.max_attempts,
                len(errors),
                sorted({e.kind for e in errors}),
            )

        logger.warning("Extraction retries exhausted after %d attempts", self.max_attempts)
        return ParsingResult.failed(errors)

    async def _single_chunk(self, prompt: str) -> AsyncIterator[str]:
        yield await self._client.complete(prompt)

    def _open_stream(self, prompt: str) -> AsyncIterator[str]:
        if self._client.supports_streaming:
            return self._client.complete_streaming(prompt)
        return self._single_chunk(prompt)

    async def parse_stream(self, request: ParsingRequest) -> AsyncIterator[StreamingEvent]:
        """Run the extraction protocol, yielding events as the model responds.

        Within an attempt the order is AttemptStarted, then RawChunk/Snapshot
        events, then one of AttemptFailed, FinalResult or StreamError. Reasoning
        preambles are stripped from the assembled text before it is parsed. Closing
        this generator closes the client's stream and emits nothing further.
        """
        base_prompt = build_prompt(request)
        errors: list[ValidationError] = []
        last_response: str | None = None
        attempt = 0

        for attempt in range(1, self.max_attempts + 1):
            prompt = self._prompt_for(attempt, base_prompt, last_response, errors)
            yield AttemptStarted(attempt=attempt)

            try:
                buffer = ""
                last_snapshot_len = 0
                async with aclosing(self._open_stream(prompt)) as chunks:
                    async for chunk in chunks:
                        yield RawChunk(chunk=chunk, attempt=attempt)
                        buffer += chunk
                        if len(buffer) - last_snapshot_len >= self.snapshot_threshold:
                            partial = self._try_parse(buffer)
                            if partial is not None:
                                yield Snapshot(result=partial, attempt=attempt)
                                last_snapshot_len = len(buffer)

                last_response = extract_answer(buffer)
                try:
                    parsed = self._parse_response(last_response)
                except PydanticValidationError as e:
                    errors = [
                        ValidationError.json_malformed(_describe_parse_failure(e))
                    ]
                    logger.info("Streaming attempt %d returned malformed JSON", attempt)
                    yield AttemptFailed(errors=errors, attempt=attempt)
                    continue

                yield Snapshot(result=parsed, attempt=attempt)
                errors = self._validate(request, parsed)
                if not errors:
                    logger.info("Streaming extraction succeeded on attempt %d", attempt)
                    yield FinalResult(result=parsed, errors=[], attempt=attempt)
                    return

                logger.info(
                    "Streaming attempt %d/%d failed with %d error(s)",
                    attempt,
                    self.max_attempts,
                    len(errors),
                )
                yield AttemptFailed(errors=errors, attempt=attempt)
            except Exception as e:  # noqa: BLE001 - surfaced as the terminal event
                logger.error("Streaming attempt %d raised: %s", attempt, e)
                error_code = (
                    e.error_code if isinstance(e, InstructorError) else "stream_error"
                )
                message = e.message if isinstance(e, InstructorError) else str(e)
                yield StreamError(
                    message=message or e.__class__.__name__,
                    error_code=error_code,
                    cause=e,
                    attempt=attempt,
                )
                return

        logger.warning(
            "Streaming extraction retries exhausted after %d attempts", self.max_attempts
        )
        yield FinalResult(
            result=ParsingResult.failed(errors), errors=list(errors), attempt=attempt
        )
