"""
Request validation utilities for the FindBooks API

Provides functions to validate and extract data from API Gateway events.
Single-field checks return an error response (or None); the field-level
checks return {"field", "message"} entries so a handler can report every
problem in one 400 response.
"""

from __future__ import annotations

import json
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import unquote

logger = logging.getLogger()

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MOBILE_PATTERN = re.compile(r"^\+?[0-9]{10,15}$")


def get_path_param(event: dict, param: str) -> tuple[str | None, dict | None]:
    """
    Extract and URL-decode a path parameter from API Gateway event.

    Args:
        event: API Gateway event
        param: Parameter name to extract

    Returns:
        tuple: (decoded_value, error_response) - If successful, error_response is None
    """
    from .response import error_response

    path_params = event.get("pathParameters") or {}
    if param not in path_params or not str(path_params[param]).strip():
        logger.warning(f"Missing {param} in path parameters")
        return None, error_response(
            400, "Bad Request", f"{param} is required in path"
        )
    return unquote(path_params[param]), None


def parse_json_body(event: dict) -> tuple[dict, dict | None]:
    """
    Parse JSON body from API Gateway event.

    Args:
        event: API Gateway event

    Returns:
        tuple: (parsed_body, error_response) - If successful, error_response is None
               If error, parsed_body is empty dict (caller should check error first)
    """
    from .response import error_response

    try:
        body = json.loads(event.get("body") or "{}")
    except json.JSONDecodeError:
        logger.warning("Invalid JSON in request body")
        return {}, error_response(400, "Bad Request", "Invalid JSON in request body")

    if not isinstance(body, dict):
        logger.warning("Request body is not a JSON object")
        return {}, error_response(400, "Bad Request", "Request body must be a JSON object")
    return body, None


def validate_string_field(
    body: dict, field: str, max_length: int = 500, required: bool = False
) -> dict | None:
    """
    Validate a string field in request body.

    Args:
        body: Request body dictionary
        field: Field name to validate
        max_length: Maximum allowed length
        required: Whether the field is required

    Returns:
        dict: Error response if validation fails, None if valid
    """
    from .response import error_response

    if field not in body:
        if required:
            return error_response(400, "Bad Request", f'Field "{field}" is required')
        return None

    value = body[field]
    if not isinstance(value, str):
        return error_response(400, "Bad Request", f'Field "{field}" must be a string')

    if len(value) > max_length:
        return error_response(
            400,
            "Bad Request",
            f'Field "{field}" exceeds maximum length of {max_length}',
        )

    if required and not value.strip():
        return error_response(400, "Bad Request", f'Field "{field}" cannot be empty')

    return None


def field_error(field: str, message: str) -> dict[str, str]:
    return {"field": field, "message": message}


def is_blank(value: Any) -> bool:
    """True for missing values, empty strings and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def check_required(body: dict, fields: dict[str, str]) -> list[dict[str, str]]:
    """
    Check that every field is present and non-empty.

    Args:
        body: Request body dictionary
        fields: Mapping of field name -> error message

    Returns:
        list: Field errors, empty if all present
    """
    return [field_error(field, message) for field, message in fields.items() if is_blank(body.get(field))]


def check_not_empty_if_present(body: dict, fields: list[str]) -> list[dict[str, str]]:
    """Check optional fields: when supplied they must not be empty."""
    return [
        field_error(field, f"{field} cannot be empty")
        for field in fields
        if field in body and is_blank(body[field])
    ]


def check_email(body: dict, field: str = "email") -> list[dict[str, str]]:
    value = body.get(field)
    if not isinstance(value, str) or not EMAIL_PATTERN.match(value.strip()):
        return [field_error(field, "Please provide a valid email")]
    return []


def check_mobile(body: dict, field: str = "mobile") -> list[dict[str, str]]:
    value = body.get(field)
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not MOBILE_PATTERN.match(value.replace(" ", "").replace("-", "")):
        return [field_error(field, "Please provide a valid mobile number")]
    return []


def check_min_length(body: dict, field: str, min_length: int) -> list[dict[str, str]]:
    value = body.get(field)
    if not isinstance(value, str) or len(value) < min_length:
        return [field_error(field, f"{field.capitalize()} must be at least {min_length} characters")]
    return []


def check_max_bytes(body: dict, field: str, max_bytes: int) -> list[dict[str, str]]:
    """Reject a string field whose UTF-8 encoding is longer than max_bytes."""
    value = body.get(field)
    if isinstance(value, str) and len(value.encode("utf-8")) > max_bytes:
        return [field_error(field, f"{field.capitalize()} must be at most {max_bytes} bytes")]
    return []


def parse_decimal(value: Any) -> Decimal | None:
    """
    Parse a JSON number or numeric string into a finite Decimal.

    Returns:
        Decimal: The parsed value, or None if it is not a number
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def check_positive_number(body: dict, field: str, message: str) -> list[dict[str, str]]:
    number = parse_decimal(body.get(field))
    if number is None or number <= 0:
        return [field_error(field, message)]
    return []


def check_order_status(body: dict, valid_statuses: list[str], field: str = "status") -> list[dict[str, str]]:
    """Check that a status is one of the order status enumeration values."""
    if body.get(field) not in valid_statuses:
        return [field_error(field, f"Status must be one of: {', '.join(valid_statuses)}")]
    return []
