"""Events emitted by a streaming extraction call.

Every event carries the attempt number it belongs to. `FinalResult` and
`StreamError` end the whole stream; `AttemptFailed` ends one attempt only.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from schemas.parsing import ParsingResult, ValidationError


class _StreamingEventBase(BaseModel):
    attempt: int = Field(..., ge=1)

    model_config = ConfigDict(frozen=True)

    @property
    def is_terminal(self) -> bool:
        return False

    def to_sse(self) -> str:
        """Render as a named server-sent event."""
        event = getattr(self, "event")
        return f"event: {event}\ndata: {self.model_dump_json()}\n\n"


class AttemptStarted(_StreamingEventBase):
    event: Literal["attemptStarted"] = "attemptStarted"


class RawChunk(_StreamingEventBase):
    event: Literal["rawChunk"] = "rawChunk"
    chunk: str


class Snapshot(_StreamingEventBase):
    """Best-effort parse of the buffer so far; never schema-validated."""

    event: Literal["snapshot"] = "snapshot"
    result: ParsingResult


class AttemptFailed(_StreamingEventBase):
    event: Literal["attemptFailed"] = "attemptFailed"
    errors: list[ValidationError]


class FinalResult(_StreamingEventBase):
    event: Literal["finalResult"] = "finalResult"
    result: ParsingResult
    errors: list[ValidationError] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return True


class StreamError(_StreamingEventBase):
    """Unexpected failure; the stream ends without a FinalResult."""

    event: Literal["error"] = "error"
    message: str
    error_code: str = "stream_error"
    # Kept for in-process consumers, never serialized.
    cause: Exception | None = Field(default=None, exclude=True, repr=False)

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @property
    def is_terminal(self) -> bool:
        return True


StreamingEvent = Annotated[
    AttemptStarted | RawChunk | Snapshot | AttemptFailed | FinalResult | StreamError,
    Field(discriminator="event"),
]
