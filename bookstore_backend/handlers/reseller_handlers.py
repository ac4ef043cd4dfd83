"""
Lambda handlers for resell listings (queries, delivery status, deletion)

A resell listing is a previously purchased book a user offers for resale.
Its status is free text set by the delivery workflow, independent of the
order status enumeration.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from botocore.exceptions import ClientError

# Support both Lambda deployment and local development
try:
    # Lambda deployment
    import config
    from utils.auth import get_user_id
    from utils.dynamodb import (
        build_update_params,
        get_item,
        get_items_by_ids,
        is_condition_failure,
        query_index,
        scan_all,
    )
    from utils.response import (
        api_response,
        error_response,
        serialize_book_response,
        serialize_reseller_response,
        serialize_user_name,
        validation_error_response,
    )
    from utils.validation import check_required, get_path_param, parse_json_body, validate_string_field
except ImportError:
    # Local development
    import bookstore_backend.config as config
    from bookstore_backend.utils.auth import get_user_id
    from bookstore_backend.utils.dynamodb import (
        build_update_params,
        get_item,
        get_items_by_ids,
        is_condition_failure,
        query_index,
        scan_all,
    )
    from bookstore_backend.utils.response import (
        api_response,
        error_response,
        serialize_book_response,
        serialize_reseller_response,
        serialize_user_name,
        validation_error_response,
    )
    from bookstore_backend.utils.validation import (
        check_required,
        get_path_param,
        parse_json_body,
        validate_string_field,
    )

logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _books_for(reseller_items: list[dict]) -> list[dict]:
    """Books referenced by the given listings, each fetched once."""
    book_items = get_items_by_ids(config.books_table, (item.get("book_id") for item in reseller_items))
    return [serialize_book_response(book) for book in book_items]


def _with_seller_names(reseller_items: list[dict]) -> tuple[list[dict], list[dict]]:
    """
    Attach the selling user's name to each listing.

    Returns:
        tuple: (listings with a "user" entry, distinct seller names)
    """
    user_items = get_items_by_ids(config.users_table, (item.get("user_id") for item in reseller_items))
    names = {user["id"]: serialize_user_name(user) for user in user_items}

    listings = []
    for item in reseller_items:
        listing = serialize_reseller_response(item)
        listing["user"] = names.get(item.get("user_id"))
        listings.append(listing)
    return listings, list(names.values())


def list_user_sell_orders_handler(event, context):
    """
    Lambda handler to list the caller's own resell listings and their books.
    Returns 404 when the caller has no listings.
    """
    logger.info("list_user_sell_orders_handler invoked")

    try:
        user_id = get_user_id(event)
        if not user_id:
            return error_response(401, "Unauthorized", "User not authenticated")

        reseller_items = query_index(config.resellers_table, config.RESELLERS_USER_INDEX, "user_id", user_id)
        if not reseller_items:
            return error_response(404, "Not Found", "No books found by the user")

        logger.info(f"Retrieved {len(reseller_items)} listings for user {user_id}")

        return api_response(200, {
            "books": _books_for(reseller_items),
            "resellerdata": [serialize_reseller_response(item) for item in reseller_items],
        })

    except Exception as e:
        logger.error(f"Error fetching sell order data: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def list_sell_orders_handler(event, context):
    """
    Lambda handler for the delivery view: every listing with its seller,
    the listed books, the sellers, and the caller as delivery user.
    """
    logger.info("list_sell_orders_handler invoked")

    try:
        user_id = get_user_id(event)
        if not user_id:
            return error_response(401, "Unauthorized", "User not authenticated")

        reseller_items = scan_all(config.resellers_table)
        listings, users = _with_seller_names(reseller_items)

        return api_response(200, {
            "reseller": listings,
            "books": _books_for(reseller_items),
            "users": users,
            "delivery": user_id,
        })

    except Exception as e:
        logger.error(f"Error fetching sell order data: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def list_reseller_books_handler(event, context):
    """Lambda handler (public) listing every resell listing with seller names and books."""
    logger.info("list_reseller_books_handler invoked")

    try:
        reseller_items = scan_all(config.resellers_table)
        listings, _ = _with_seller_names(reseller_items)

        return api_response(200, {"resellers": listings, "books": _books_for(reseller_items)})

    except Exception as e:
        logger.error(f"Error fetching reseller books: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def update_sell_order_status_handler(event, context):
    """
    Lambda handler to record a delivery/pickup step on a resell listing.
    Expects the new status in path parameter 'Status' and JSON body with:
    - resellerid: listing id
    - bookid: (optional) book the listing must reference

    Sets the status and stamps the caller as delivery user in one
    conditional write. If nothing changes (missing listing, other book, or
    already in this state with this delivery user) the result is 404.
    """
    logger.info("update_sell_order_status_handler invoked")

    try:
        user_id = get_user_id(event)
        if not user_id:
            return error_response(401, "Unauthorized", "User not authenticated")

        status, error = get_path_param(event, "Status")
        if error:
            return error

        if len(status) > config.MAX_STRING_LENGTH:
            return error_response(
                400, "Bad Request", f"Status exceeds maximum length of {config.MAX_STRING_LENGTH}"
            )

        body, error = parse_json_body(event)
        if error:
            return error

        errors = check_required(body, {"resellerid": "Reseller ID is required"})
        if errors:
            return validation_error_response(errors)

        error = validate_string_field(body, "resellerid", max_length=config.MAX_STRING_LENGTH)
        if error:
            return error

        reseller_id = body["resellerid"]
        book_id = body.get("bookid")

        condition_expression = (
            "attribute_exists(id) AND NOT (#resell_status = :resell_status "
            "AND #delivery_user_id = :delivery_user_id)"
        )
        condition_values = {}
        condition_names = {}
        if book_id:
            condition_expression += " AND #book_id = :book_id"
            condition_values[":book_id"] = book_id
            condition_names["#book_id"] = "book_id"

        update_params = build_update_params(
            key={"id": reseller_id},
            fields={
                "resell_status": status,
                "delivery_user_id": user_id,
                "updated": datetime.now(UTC).isoformat(),
            },
            condition_expression=condition_expression,
            condition_values=condition_values,
            condition_names=condition_names,
            return_values="NONE",
        )

        try:
            config.resellers_table.update_item(**update_params)
        except ClientError as e:
            if is_condition_failure(e):
                logger.warning(f"Listing {reseller_id} not found or already {status}")
                return error_response(404, "Not Found", "Reseller not found or already updated")
            raise

        logger.info(f"Listing {reseller_id} set to {status} by delivery user {user_id}")

        return api_response(200, {"message": "Sell order updated successfully"})

    except Exception as e:
        logger.error(f"Error updating sell order: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def delete_reseller_book_handler(event, context):
    """
    Lambda handler to delete a resell listing.
    Expects listing ID in path parameter 'id'. The referenced book must
    still exist; the book itself is kept.
    """
    logger.info("delete_reseller_book_handler invoked")

    try:
        reseller_id, error = get_path_param(event, "id")
        if error:
            return error

        reseller_item = get_item(config.resellers_table, reseller_id)
        if not reseller_item:
            logger.warning(f"Listing not found: {reseller_id}")
            return error_response(404, "Not Found", "Reseller book entry not found")

        book_id = reseller_item.get("book_id")
        if not book_id or not get_item(config.books_table, book_id):
            logger.warning(f"Listing {reseller_id} references missing book {book_id}")
            return error_response(404, "Not Found", "Referenced book not found")

        try:
            config.resellers_table.delete_item(
                Key={"id": reseller_id}, ConditionExpression="attribute_exists(id)"
            )
        except ClientError as e:
            if is_condition_failure(e):
                return error_response(404, "Not Found", "Reseller book entry not found")
            raise

        logger.info(f"Deleted listing {reseller_id} for book {book_id}")

        return api_response(200, {
            "message": "Reseller book deleted successfully",
            "deletedBookId": book_id,
        })

    except Exception as e:
        logger.error(f"Error deleting reseller book: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))
