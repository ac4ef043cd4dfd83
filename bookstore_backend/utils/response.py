"""
Response building utilities for the FindBooks API

Provides functions to create standardized API Gateway responses and to turn
DynamoDB items into API response objects.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any


def convert_decimal(value: Any) -> Any:
    """
    Convert Decimal types (from DynamoDB) to int or float for JSON serialization.

    Args:
        value: Value that might be a Decimal

    Returns:
        Converted value (int if whole number, otherwise float)
    """
    if isinstance(value, Decimal):
        return int(value) if value % 1 == 0 else float(value)
    return value


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return convert_decimal(value)
    if isinstance(value, set):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def api_response(status_code: int, body: Any) -> dict:
    """
    Helper to format API Gateway response with CORS headers.

    Args:
        status_code: HTTP status code
        body: Response body (will be JSON serialized)

    Returns:
        dict: API Gateway response with headers
    """
    return {
        "statusCode": status_code,
        "body": json.dumps(body, default=_json_default),
        "headers": {
            "Content-Type": "application/json",
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Headers": "Content-Type,Authorization",
            "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
        },
    }


def error_response(status_code: int, error: str, message: str) -> dict:
    """
    Helper to create error response.

    Args:
        status_code: HTTP status code
        error: Error type/category
        message: Error message

    Returns:
        dict: API Gateway error response
    """
    return api_response(status_code, {"error": error, "message": message})


def validation_error_response(errors: list[dict[str, str]]) -> dict:
    """
    Helper to create a 400 response carrying field-level validation errors.

    Args:
        errors: List of {"field": ..., "message": ...} entries

    Returns:
        dict: API Gateway error response
    """
    return api_response(
        400,
        {"error": "Bad Request", "message": "Validation failed", "errors": errors},
    )


def _line_items(items: list | None) -> list[dict]:
    return [
        {
            "book_id": item.get("book_id"),
            "book_quantity": convert_decimal(item.get("book_quantity")),
        }
        for item in items or []
    ]


def serialize_user_response(user_item: dict) -> dict:
    """
    Convert a Users table item to API response format.

    Password hashes and OTP state are never included.
    """
    return {
        "id": user_item.get("id"),
        "first_name": user_item.get("first_name"),
        "last_name": user_item.get("last_name"),
        "email": user_item.get("email"),
        "phone_no": user_item.get("phone_no"),
        "role": user_item.get("role"),
        "created": user_item.get("created"),
    }


def serialize_user_name(user_item: dict | None) -> dict | None:
    """Reduce a user to the public name fields shown next to listings."""
    if not user_item:
        return None
    return {
        "id": user_item.get("id"),
        "first_name": user_item.get("first_name"),
        "last_name": user_item.get("last_name"),
    }


def serialize_book_response(book_item: dict) -> dict:
    """
    Convert DynamoDB book item to API response format.

    Args:
        book_item: DynamoDB item (Books table)

    Returns:
        dict: Book object for API response
    """
    book: dict[str, Any] = {
        "id": book_item.get("id"),
        "book_name": book_item.get("book_name"),
        "book_image_url": book_item.get("book_image_url"),
        "author": book_item.get("author"),
        "publication_date": book_item.get("publication_date"),
        "publisher": book_item.get("publisher"),
        "description": book_item.get("description"),
        "price": convert_decimal(book_item.get("price")),
        "isbn": book_item.get("isbn"),
        "subcategory_id": book_item.get("subcategory_id"),
        "user_id": book_item.get("user_id"),
        "is_old_book": book_item.get("is_old_book", False),
        "created": book_item.get("created"),
    }

    # Add optional fields if present
    if "edition" in book_item:
        book["edition"] = book_item["edition"]

    if "condition" in book_item:
        book["condition"] = book_item["condition"]

    return book


def serialize_order_response(order_item: dict) -> dict:
    """Convert an Orders table item to API response format."""
    return {
        "id": order_item.get("id"),
        "user_id": order_item.get("user_id"),
        "cart_id": order_item.get("cart_id"),
        "books": _line_items(order_item.get("books")),
        "total_amount": convert_decimal(order_item.get("total_amount")),
        "order_status": order_item.get("order_status", "Pending"),
        "created": order_item.get("created"),
        "updated": order_item.get("updated"),
    }


def serialize_payment_response(payment_item: dict) -> dict:
    """Convert a Payments table item to API response format."""
    payment: dict[str, Any] = {
        "id": payment_item.get("id"),
        "order_id": payment_item.get("order_id"),
        "payment_method": payment_item.get("payment_method"),
        "payment_status": payment_item.get("payment_status"),
        "total_payment": convert_decimal(payment_item.get("total_payment")),
        "transaction_type": payment_item.get("transaction_type"),
        "created": payment_item.get("created"),
    }

    if "payment_id" in payment_item:
        payment["payment_id"] = payment_item["payment_id"]

    if "payment_date" in payment_item:
        payment["payment_date"] = payment_item["payment_date"]

    return payment


def serialize_reseller_response(reseller_item: dict) -> dict:
    """Convert a Resellers table item to API response format."""
    return {
        "id": reseller_item.get("id"),
        "book_id": reseller_item.get("book_id"),
        "user_id": reseller_item.get("user_id"),
        "resell_status": reseller_item.get("resell_status"),
        "delivery_user_id": reseller_item.get("delivery_user_id"),
        "created": reseller_item.get("created"),
    }
