"""Schemas shared by the extraction engine and its callers.

The model is asked to answer with a ParsingResult document::

    {"fields": {"<name>": {"value": ..., "confidence": 0.9,
                           "reasoning": "...", "alternatives": [...]}},
     "errors": [{"path": "...", "message": "...", "type": "..."}]}

Only the field values are schema-validated; see `ParsingResult.value_document`.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)


# Error kinds produced by the engine itself. Anything else is the JSON Schema
# keyword reported by the validator (e.g. "type", "required", "enum").
JSON_MALFORMED = "json-malformed"
PARSING_ERROR = "parsing-error"
INTERNAL_VALIDATION_ERROR = "internal-validation-error"

ROOT_PATH = "root"


class ValidationError(BaseModel):
    """One problem found in a model response.

    `kind` is read from either ``kind`` or ``type`` so the model's own
    ``errors`` entries parse; it always serializes as ``kind``. The model may
    leave out `path` or `kind`, in which case they are empty.
    """

    path: str = ""
    message: str = ""
    kind: str = Field("", validation_alias=AliasChoices("kind", "type"))

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @classmethod
    def json_malformed(cls, detail: str) -> ValidationError:
        return cls(
            path=ROOT_PATH,
            message=f"Invalid JSON format: {detail}",
            kind=JSON_MALFORMED,
        )


class FieldResult(BaseModel):
    """A single extracted field as reported by the model.

    `confidence` is kept as the model reported it; it is not range checked.
    """

    value: Any = None
    confidence: float = 0.0
    reasoning: str = ""
    alternatives: list[Any] = Field(default_factory=list)

    @field_validator("reasoning", mode="before")
    @classmethod
    def _reasoning_none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("alternatives", mode="before")
    @classmethod
    def _alternatives_none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class ParsingResult(BaseModel):
    """Outcome of one extraction call.

    A successful result has ``fields`` and no errors. When retries are
    exhausted ``fields`` is None and ``errors`` holds the last attempt's errors.
    """

    fields: dict[str, FieldResult] | None = None
    errors: list[ValidationError] = Field(default_factory=list)

    @field_validator("errors", mode="before")
    @classmethod
    def _errors_none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @classmethod
    def failed(cls, errors: list[ValidationError]) -> ParsingResult:
        return cls(fields=None, errors=list(errors))

    @property
    def succeeded(self) -> bool:
        return self.fields is not None and not self.errors

    def value_of(self, name: str, default: Any = None) -> Any:
        """Return the extracted value for `name`, or `default` when absent."""
        if not self.fields or name not in self.fields:
            return default
        value = self.fields[name].value
        return default if value is None else value

    def value_document(self) -> dict[str, Any]:
        """Reduce fields to ``{name: value}``, dropping fields without a value."""
        if not self.fields:
            return {}
        return {
            name: field.value
            for name, field in self.fields.items()
            if field.value is not None
        }

    def value_document_json(self) -> str:
        return json.dumps(self.value_document(), ensure_ascii=False)


class ParsingRequest(BaseModel):
    """Immutable input to one extraction call.

    `json_schema` is the JSON Schema document as text; a dict is accepted and
    serialized on construction. `context` is copied into a read-only mapping.
    """

    json_schema: str = Field(validation_alias=AliasChoices("json_schema", "schema"))
    user_input: str
    context: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("json_schema", mode="before")
    @classmethod
    def _schema_to_text(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return json.dumps(v, ensure_ascii=False)
        return v

    @field_validator("context", mode="after")
    @classmethod
    def _freeze_context(cls, v: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(v))

    @field_serializer("context")
    def _serialize_context(self, v: Mapping[str, Any]) -> dict[str, Any]:
        return dict(v)
