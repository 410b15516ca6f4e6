"""Domain exceptions for the extraction engine.

Each exception carries a stable `error_code` that the API layer and the
streaming endpoint surface to clients.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class InstructorError(Exception):
    """Base class for extraction engine errors."""

    message: str
    error_code: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.error_code}: {self.message}"


class LlmClientError(InstructorError):
    """The language model provider call failed (network, auth, quota...)."""

    def __init__(self, message: str = "Language model call failed") -> None:
        super().__init__(message=message, error_code="llm_error")

