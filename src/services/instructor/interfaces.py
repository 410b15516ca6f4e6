"""Collaborator interfaces for the extraction engine.

The engine depends only on these protocols, so tests and alternative
providers can be swapped in without touching the retry logic.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol

from schemas.parsing import ValidationError


class LlmClient(Protocol):
    """A text-in/text-out language model backend."""

    @property
    def supports_streaming(self) -> bool:
        """True when `complete_streaming` delivers text incrementally."""
        ...

    async def complete(self, prompt: str) -> str:
        """Return the full model response for `prompt`."""
        ...

    def complete_streaming(self, prompt: str) -> AsyncIterator[str]:
        """Yield response fragments in arrival order.

        Clients without incremental delivery may yield the full response once.
        """
        ...


class SchemaValidator(Protocol):
    """Validates JSON text against a JSON Schema document."""

    def validate(self, schema_text: str, instance_text: str) -> list[ValidationError]:
        """Return violations; unreadable input is reported, never raised."""
        ...
