"""
Structured Validation Error Utilities

Turns request validation failures into the field-level shape every 400
response uses:

{
    "message": "Validation failed",
    "error": "validation_error",
    "errors": [{"field": "email", "message": "Please include a valid email"}]
}
"""

from typing import Any, Dict, Iterable, List, Optional

# Human messages for request fields, keyed by field name.
FIELD_MESSAGES = {
    "first_name": "First name is required",
    "last_name": "Last name is required",
    "firstName": "First name is required",
    "lastName": "Last name is required",
    "username": "Username is required",
    "email": "Please include a valid email",
    "password": "Password must be at least 6 characters",
    "token": "Token is required",
    "content": "Comment content is required",
}


class ValidationErrorResponse:
    """Structured validation error entry builder."""

    @staticmethod
    def missing_parameter(parameter: str, message: Optional[str] = None) -> Dict[str, str]:
        return {
            "field": parameter,
            "message": message or FIELD_MESSAGES.get(parameter, f"{parameter} is required"),
        }

    @staticmethod
    def invalid_parameter(parameter: str, message: str) -> Dict[str, str]:
        return {"field": parameter, "message": message}


def from_pydantic_errors(errors: Iterable[Dict[str, Any]]) -> List[Dict[str, str]]:
    """
    Convert pydantic/FastAPI error dicts into field-level entries.

    The location prefix ("body", "query", ...) is dropped; model-level
    errors are reported against the pseudo-field "__all__".
    """
    entries = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc) or "__all__"
        if err.get("type") == "missing":
            entries.append(ValidationErrorResponse.missing_parameter(field))
        else:
            message = FIELD_MESSAGES.get(field) or err.get("msg", "Invalid value")
            if field == "__all__":
                message = str(err.get("msg", "Invalid request")).removeprefix("Value error, ")
            entries.append(ValidationErrorResponse.invalid_parameter(field, message))
    return entries
