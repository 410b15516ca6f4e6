"""Prompt templates for form extraction."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any

from schemas.parsing import ParsingRequest, ValidationError


SYSTEM_PROMPT_TEMPLATE = """\
You are a smart form filling assistant. Your goal is to extract structured data \
from user input based on a provided JSON Schema.

### INSTRUCTIONS
1. **Analyze the Input**: Read the User Input and Context carefully.
2. **Follow the Schema**: The output MUST adhere to the provided JSON Schema.
3. **Extraction Rules**:
   - **Value**: Extract the value for each field. If a field is missing, do not \
invent it unless a default is clear from context.
   - **Confidence**: Assign a confidence score (0.0 to 1.0) for each extracted value.
   - **Reasoning**: Explain why you extracted this value or why you are unsure.
   - **Alternatives**: If the input is ambiguous, list alternative values.
4. **Validation**:
   - Ensure types match the schema (e.g., integers for numbers).
   - Respect enums and constraints.
5. **Output Format**:
   You must return a JSON object strictly matching this structure:
   {{
     "fields": {{
       "fieldName": {{
         "value": <extracted_value>,
         "confidence": <0.0-1.0>,
         "reasoning": "<explanation>",
         "alternatives": [<alt1>, <alt2>]
       }}
     }},
     "errors": [
        {{ "path": "<field_path>", "message": "<error_message>", "type": "<error_type>" }}
     ]
   }}

### CONTEXT
{context}

### FORM SCHEMA
{schema}

### USER INPUT
{user_input}

Answer strictly in JSON.
"""

RETRY_PROMPT_SUFFIX = """

### PREVIOUS ATTEMPT FAILED
Your previous response was invalid.
Response: {response}
Errors:
{errors}
Please fix these errors and return the valid JSON."""


def render_context(context: Mapping[str, Any]) -> str:
    if not context:
        return "{}"
    return json.dumps(dict(context), ensure_ascii=False, indent=2, default=str)


def build_prompt(request: ParsingRequest) -> str:
    """Render the base extraction prompt for a request."""
    return SYSTEM_PROMPT_TEMPLATE.format(
        context=render_context(request.context),
        schema=request.json_schema,
        user_input=request.user_input,
    )


def build_retry_prompt(
    base_prompt: str,
    previous_response: str | None,
    errors: Sequence[ValidationError],
) -> str:
    """Append the failed response and its errors to the base prompt.

    Always built from the base prompt, so retries do not accumulate history.
    """
    error_lines = "\n".join(f"- {e.path}: {e.message}" for e in errors)
    return base_prompt + RETRY_PROMPT_SUFFIX.format(
        response=previous_response if previous_response is not None else "",
        errors=error_lines,
    )
