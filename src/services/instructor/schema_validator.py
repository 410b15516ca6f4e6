"""JSON Schema validation of extracted value documents."""

from __future__ import annotations

import json
import logging

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from schemas.parsing import PARSING_ERROR, ValidationError


logger = logging.getLogger(__name__)


class JsonSchemaValidator:
    """Validate JSON text against a Draft 2020-12 schema with format checks.

    Problems reading either document are reported as a single `parsing-error`
    at path ``$``; this class never raises for bad input.
    """

    def validate(self, schema_text: str, instance_text: str) -> list[ValidationError]:
        try:
            schema = json.loads(schema_text)
            instance = json.loads(instance_text)
            Draft202012Validator.check_schema(schema)
        except (ValueError, TypeError, SchemaError) as e:
            message = e.message if isinstance(e, SchemaError) else str(e)
            logger.debug("Schema validation could not start: %s", message)
            return [self._parsing_error(f"Malformed JSON: {message}")]

        validator = Draft202012Validator(
            schema, format_checker=Draft202012Validator.FORMAT_CHECKER
        )
        try:
            violations = list(validator.iter_errors(instance))
        except Exception as e:  # noqa: BLE001 - unresolvable $ref and friends
            logger.warning("Schema could not be applied: %s", e)
            return [self._parsing_error(f"Schema could not be applied: {e}")]

        errors = [
            ValidationError(
                path=v.json_path,
                message=v.message,
                kind=str(v.validator),
            )
            for v in violations
        ]
        errors.sort(key=lambda e: (e.path, e.kind, e.message))
        return errors

    @staticmethod
    def _parsing_error(message: str) -> ValidationError:
        return ValidationError(path="$", message=message, kind=PARSING_ERROR)
