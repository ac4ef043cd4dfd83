"""
Lambda handlers for the book catalog (create, list, update, delete)

Admins add new books; any other role adds an old book for resale.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from botocore.exceptions import ClientError

# Support both Lambda deployment and local development
try:
    # Lambda deployment
    import config
    from utils.auth import get_user_id, is_admin
    from utils.dynamodb import build_update_params, get_item, is_condition_failure, query_index, scan_all
    from utils.response import api_response, error_response, serialize_book_response, validation_error_response
    from utils.validation import (
        check_not_empty_if_present,
        check_required,
        field_error,
        get_path_param,
        parse_decimal,
        parse_json_body,
        validate_string_field,
    )
except ImportError:
    # Local development
    import bookstore_backend.config as config
    from bookstore_backend.utils.auth import get_user_id, is_admin
    from bookstore_backend.utils.dynamodb import (
        build_update_params,
        get_item,
        is_condition_failure,
        query_index,
        scan_all,
    )
    from bookstore_backend.utils.response import (
        api_response,
        error_response,
        serialize_book_response,
        validation_error_response,
    )
    from bookstore_backend.utils.validation import (
        check_not_empty_if_present,
        check_required,
        field_error,
        get_path_param,
        parse_decimal,
        parse_json_body,
        validate_string_field,
    )

logger = logging.getLogger()
logger.setLevel(logging.INFO)

# Request field -> Books table attribute
BOOK_FIELDS = {
    "BookName": "book_name",
    "Author": "author",
    "Edition": "edition",
    "Publication_Date": "publication_date",
    "Publisher": "publisher",
    "Description": "description",
    "Price": "price",
    "ISBN": "isbn",
    "Condition": "condition",
    "BookImageURL": "book_image_url",
}

REQUIRED_BOOK_FIELDS = {
    "BookName": "Please, Enter book name",
    "Author": "Please, Enter book author",
    "Publication_Date": "Please, Enter publication date",
    "Publisher": "Please, Enter book publisher",
    "Description": "Please, Enter book description",
    "Price": "Please, Enter book price",
    "ISBN": "Please, Enter book ISBN",
    "SubCategory": "Please enter subcategory",
}


def _check_string_fields(body: dict) -> dict | None:
    for field in list(BOOK_FIELDS) + ["SubCategory"]:
        if field == "Price":
            continue
        error = validate_string_field(body, field, max_length=config.MAX_STRING_LENGTH)
        if error:
            return error
    return None


def _check_price(body: dict) -> list[dict[str, str]]:
    if "Price" not in body:
        return []
    price = parse_decimal(body["Price"])
    if price is None or price < 0:
        return [field_error("Price", "Price must be a non-negative number")]
    return []


def _book_fields_from_body(body: dict) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for request_field, attribute in BOOK_FIELDS.items():
        if request_field in body:
            value = body[request_field]
            fields[attribute] = parse_decimal(value) if request_field == "Price" else value
    return fields


def _subcategory_exists(subcategory_id: str) -> bool:
    return get_item(config.subcategories_table, subcategory_id) is not None


def _can_modify(event: dict, user_id: str, book_item: dict) -> bool:
    return is_admin(event) or book_item.get("user_id") == user_id


def create_book_handler(event, context):
    """
    Lambda handler to add a book.
    Expects the caller role in path parameter 'userRole' and JSON body with
    BookName, Author, Publication_Date, Publisher, Description, Price, ISBN
    and SubCategory, plus optional Edition, Condition and BookImageURL.

    - userRole "Admin": admin callers only; new book, ISBN must be unique
    - any other role: old book offered by the caller
    """
    logger.info("create_book_handler invoked")

    try:
        user_id = get_user_id(event)
        if not user_id:
            return error_response(401, "Unauthorized", "User not authenticated")

        user_role, error = get_path_param(event, "userRole")
        if error:
            return error

        body, error = parse_json_body(event)
        if error:
            return error

        errors = check_required(body, REQUIRED_BOOK_FIELDS) + _check_price(body)
        if errors:
            return validation_error_response(errors)

        error = _check_string_fields(body)
        if error:
            return error

        as_admin = user_role == config.ROLE_ADMIN
        if as_admin and not is_admin(event):
            logger.warning(f"Non-admin user {user_id} attempted to add a new book")
            return error_response(403, "Forbidden", "Only administrators can add new books")

        if as_admin:
            existing = query_index(config.books_table, config.BOOKS_ISBN_INDEX, "isbn", body["ISBN"])
            if existing:
                return error_response(400, "Bad Request", "Book with this ISBN already exists")

        if not _subcategory_exists(body["SubCategory"]):
            return error_response(400, "Bad Request", "Invalid subcategory")

        now = datetime.now(UTC).isoformat()
        book_item = {
            "id": str(uuid.uuid4()),
            **_book_fields_from_body(body),
            "subcategory_id": body["SubCategory"],
            "user_id": user_id,
            "is_old_book": not as_admin,
            "created": now,
        }
        book_item.setdefault("book_image_url", config.DEFAULT_BOOK_IMAGE)

        config.books_table.put_item(Item=book_item)

        logger.info(f"Added {'new' if as_admin else 'old'} book {book_item['id']} for user {user_id}")

        return api_response(201, {"book": serialize_book_response(book_item)})

    except Exception as e:
        logger.error(f"Error saving book: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def list_books_handler(event, context):
    """
    Lambda handler to list every book, most recent first.
    Returns 404 when the catalog is empty.
    """
    logger.info("list_books_handler invoked")

    try:
        items = scan_all(config.books_table)
        if not items:
            return error_response(404, "Not Found", "No book data found")

        logger.info(f"Retrieved {len(items)} books from DynamoDB")

        books = [serialize_book_response(item) for item in items]
        books.sort(key=lambda x: x.get("created") or "", reverse=True)

        return api_response(200, books)

    except Exception as e:
        logger.error(f"Error listing books: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def update_book_handler(event, context):
    """
    Lambda handler to update book metadata.
    Expects JSON body with bookId and any of the book fields; fields that are
    present must not be empty. Only the book's owner or an admin may update.
    """
    logger.info("update_book_handler invoked")

    try:
        user_id = get_user_id(event)
        if not user_id:
            return error_response(401, "Unauthorized", "User not authenticated")

        body, error = parse_json_body(event)
        if error:
            return error

        errors = check_required(body, {"bookId": "Book ID is required"})
        errors += check_not_empty_if_present(
            body, [f for f in list(BOOK_FIELDS) + ["SubCategory"] if f not in ("Edition", "Condition")]
        )
        errors += _check_price(body)
        if errors:
            return validation_error_response(errors)

        error = _check_string_fields(body)
        if error:
            return error

        book_id = body["bookId"]
        book_item = get_item(config.books_table, book_id)
        if not book_item:
            logger.warning(f"Book not found: {book_id}")
            return error_response(404, "Not Found", "Book not found")

        if not _can_modify(event, user_id, book_item):
            logger.warning(f"User {user_id} attempted to update book {book_id} they do not own")
            return error_response(403, "Forbidden", "You can only update your own books")

        fields = _book_fields_from_body(body)

        if "SubCategory" in body:
            if not _subcategory_exists(body["SubCategory"]):
                return error_response(400, "Bad Request", "Invalid subcategory")
            fields["subcategory_id"] = body["SubCategory"]

        if not fields:
            return error_response(400, "Bad Request", "No valid fields to update")

        fields["updated"] = datetime.now(UTC).isoformat()

        update_params = build_update_params(
            key={"id": book_id},
            fields=fields,
            condition_expression="attribute_exists(id)",
        )

        try:
            response = config.books_table.update_item(**update_params)
        except ClientError as e:
            if is_condition_failure(e):
                return error_response(404, "Not Found", "Book not found")
            raise

        logger.info(f"Updated book {book_id} fields: {list(fields.keys())}")

        return api_response(200, {
            "success": True,
            "message": "Book updated successfully",
            "book": serialize_book_response(response["Attributes"]),
        })

    except Exception as e:
        logger.error(f"Error updating book: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def delete_book_handler(event, context):
    """
    Lambda handler to delete a book.
    Expects JSON body with bookId. Only the book's owner or an admin may delete.
    """
    logger.info("delete_book_handler invoked")

    try:
        user_id = get_user_id(event)
        if not user_id:
            return error_response(401, "Unauthorized", "User not authenticated")

        body, error = parse_json_body(event)
        if error:
            return error

        errors = check_required(body, {"bookId": "Book ID is required"})
        if errors:
            return validation_error_response(errors)

        book_id = body["bookId"]
        book_item = get_item(config.books_table, book_id)
        if not book_item:
            logger.warning(f"Book not found: {book_id}")
            return error_response(404, "Not Found", "Book not found")

        if not _can_modify(event, user_id, book_item):
            logger.warning(f"User {user_id} attempted to delete book {book_id} they do not own")
            return error_response(403, "Forbidden", "You can only delete your own books")

        try:
            config.books_table.delete_item(
                Key={"id": book_id}, ConditionExpression="attribute_exists(id)"
            )
        except ClientError as e:
            if is_condition_failure(e):
                return error_response(404, "Not Found", "Book not found")
            raise

        logger.info(f"Deleted book {book_id}")

        return api_response(200, {"success": True, "message": "Book deleted successfully"})

    except Exception as e:
        logger.error(f"Error deleting book: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def list_books_by_subcategory_handler(event, context):
    """
    Lambda handler to list books of a subcategory.
    Expects the subcategory name in path parameter 'Subcategoryname'.
    """
    logger.info("list_books_by_subcategory_handler invoked")

    try:
        name, error = get_path_param(event, "Subcategoryname")
        if error:
            return error

        subcategories = query_index(
            config.subcategories_table, config.SUBCATEGORIES_NAME_INDEX, "subcategory_name", name
        )
        if not subcategories:
            logger.warning(f"Subcategory not found: {name}")
            return error_response(404, "Not Found", f'Subcategory "{name}" not found')

        items = query_index(
            config.books_table, config.BOOKS_SUBCATEGORY_INDEX, "subcategory_id", subcategories[0]["id"]
        )

        return api_response(200, [serialize_book_response(item) for item in items])

    except Exception as e:
        logger.error(f"Error listing books by subcategory: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))
