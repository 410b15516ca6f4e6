"""Security configuration constants for the LazyForm API.

This module centralizes security-related configuration including:
- Sensitive keys that should be sanitized from logs
- Error response fields allowed per environment
"""

# Keys redacted from structured logs. Matching is substring based and
# case-insensitive, so "llm_api_key" is caught by "api_key".
SENSITIVE_KEYS: set[str] = {
    # Credentials
    "password",
    "secret",
    "token",
    "access_token",
    "refresh_token",
    "authorization",
    "auth_token",
    "api_key",
    "jwt",
    "session_id",
    "bearer",
    # Personal data that may appear in form context
    "email",
    "phone",
    "phone_number",
    "ssn",
    "social_security_number",
    "address",
    "credit_card",
    "card_number",
    "bank_account",
    "account_number",
    # Headers
    "set-cookie",
    "cookie",
    "x-auth-token",
    "x-api-key",
    "x-session-id",
    "authentication",
}

# In production, error responses should only contain these fields to
# prevent information leakage
PRODUCTION_ERROR_FIELDS: set[str] = {
    "correlation_id",
    "type",
}

# Development error response fields (additional fields allowed in development)
DEVELOPMENT_ERROR_FIELDS: set[str] = PRODUCTION_ERROR_FIELDS | {
    "details",
    "traceback",
    "exception_type",
    "validation_errors",
}


def get_allowed_error_fields(environment: str) -> set[str]:
    """Get allowed error response fields based on environment.

    Args:
        environment: The application environment (production, development, etc.)

    Returns:
        Set of allowed field names for error responses
    """
    if environment == "production":
        return PRODUCTION_ERROR_FIELDS.copy()
    return DEVELOPMENT_ERROR_FIELDS.copy()


def is_sensitive_key(key: str) -> bool:
    """Check if a key should be considered sensitive and redacted."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)
