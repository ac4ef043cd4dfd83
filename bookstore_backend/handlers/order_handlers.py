"""
Lambda handlers for order finalization and order status changes

Finalization copies a cart onto its order and flags every resell listing of
the ordered books as sold. Both writes go through one DynamoDB transaction so
the order and its listings never disagree.
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
        build_in_filter,
        build_transact_update,
        build_update_params,
        chunked,
        get_item,
        is_condition_failure,
        is_transaction_cancelled,
        query_index,
        scan_all,
    )
    from utils.orders import can_transition, cart_line_items, current_status, line_item_book_ids
    from utils.response import api_response, error_response, serialize_order_response, validation_error_response
    from utils.validation import check_order_status, field_error, get_path_param, is_blank, parse_decimal, parse_json_body
except ImportError:
    # Local development
    import bookstore_backend.config as config
    from bookstore_backend.utils.auth import get_user_id
    from bookstore_backend.utils.dynamodb import (
        build_in_filter,
        build_transact_update,
        build_update_params,
        chunked,
        get_item,
        is_condition_failure,
        is_transaction_cancelled,
        query_index,
        scan_all,
    )
    from bookstore_backend.utils.orders import can_transition, cart_line_items, current_status, line_item_book_ids
    from bookstore_backend.utils.response import (
        api_response,
        error_response,
        serialize_order_response,
        validation_error_response,
    )
    from bookstore_backend.utils.validation import (
        check_order_status,
        field_error,
        get_path_param,
        is_blank,
        parse_decimal,
        parse_json_body,
    )

logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _status_condition(order_item: dict) -> tuple[str, dict]:
    """
    Condition guarding an order status write against concurrent changes.

    Returns:
        tuple: (condition_expression, condition_values); relies on the
               "#order_status" name placeholder from the update fields
    """
    if "order_status" in order_item:
        return (
            "attribute_exists(id) AND #order_status = :current_status",
            {":current_status": order_item["order_status"]},
        )
    return "attribute_exists(id) AND attribute_not_exists(#order_status)", {}


def _find_resellers_for_books(book_ids: list[str]) -> list[dict]:
    """
    Get every resell listing that references one of the given books.

    Args:
        book_ids: Book identifiers

    Returns:
        list: Resellers table items
    """
    resellers = []
    for chunk in chunked(book_ids, 100):
        expression, names, values = build_in_filter("book_id", chunk)
        resellers.extend(
            scan_all(
                config.resellers_table,
                FilterExpression=expression,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        )
    return resellers


def _write_transactionally(entries: list[dict], order_id: str) -> None:
    """
    Write TransactWriteItems entries, the order update first.

    The first transaction holds the order and up to 99 listings. DynamoDB
    caps a transaction at 100 items, so any further listings follow in
    their own transactions.

    Raises:
        ClientError: TransactionCanceledException if a condition fails
    """
    limit = config.MAX_TRANSACTION_ITEMS
    config.dynamodb_client.transact_write_items(TransactItems=entries[:limit])

    remaining = entries[limit:]
    if not remaining:
        return

    logger.warning(
        f"[Order: {order_id}] {len(remaining)} reseller updates exceed one transaction; "
        "writing them in follow-up transactions"
    )
    for chunk in chunked(remaining, limit):
        try:
            config.dynamodb_client.transact_write_items(TransactItems=chunk)
        except ClientError as e:
            logger.error(
                f"[Order: {order_id}] Follow-up reseller transaction failed after the order was saved: {str(e)}",
                exc_info=True,
            )
            raise


def finalize_order_handler(event, context):
    """
    Lambda handler to finalize an order from its cart.
    Expects JSON body with:
    - cartid: {"cartid": <cart id>}
    - TotalAmount: order total
    - status: (optional) new order status

    Steps:
    1. Load the cart (404 if missing)
    2. Load the order created for that cart (404 if missing)
    3. Apply the optional status if it is one of the valid statuses
    4. Copy the cart's line items and the total onto the order
    5. Mark every resell listing of the ordered books as "Sell"

    Steps 4 and 5 are written in one DynamoDB transaction.
    """
    logger.info("finalize_order_handler invoked")

    try:
        user_id = get_user_id(event)
        if not user_id:
            return error_response(401, "Unauthorized", "User not authenticated")

        body, error = parse_json_body(event)
        if error:
            return error

        cart_ref = body.get("cartid")
        cart_id = cart_ref.get("cartid") if isinstance(cart_ref, dict) else cart_ref
        total_amount = parse_decimal(body.get("TotalAmount"))

        errors = []
        if is_blank(cart_id) or not isinstance(cart_id, str):
            errors.append(field_error("cartid", "Cart ID is required"))
        if total_amount is None or total_amount < 0:
            errors.append(field_error("TotalAmount", "Total amount must be a non-negative number"))
        if errors:
            return validation_error_response(errors)

        logger.info(f"[Cart: {cart_id}] Finalizing order for user {user_id}")

        cart_item = get_item(config.carts_table, cart_id)
        if not cart_item:
            logger.warning(f"Cart not found: {cart_id}")
            return error_response(404, "Not Found", "Cart not found")

        orders = query_index(config.orders_table, config.ORDERS_CART_INDEX, "cart_id", cart_id)
        if not orders:
            logger.warning(f"No order for cart: {cart_id}")
            return error_response(404, "Not Found", "Order not found for this cart")

        order_item = orders[0]
        order_id = order_item["id"]
        now = datetime.now(UTC).isoformat()

        line_items = cart_line_items(cart_item)
        order_fields = {
            "books": line_items,
            "total_amount": total_amount,
            "updated": now,
        }
        condition_expression = "attribute_exists(id)"
        condition_values: dict = {}

        status = body.get("status")
        existing_status = current_status(order_item)
        if status in config.VALID_ORDER_STATUSES and status != existing_status:
            if not can_transition(existing_status, status, config.ORDER_STATUS_TRANSITIONS):
                logger.info(f"[Order: {order_id}] Unusual status move {existing_status} -> {status}")
            order_fields["order_status"] = status
            condition_expression, condition_values = _status_condition(order_item)
        elif status and status not in config.VALID_ORDER_STATUSES:
            logger.warning(f"[Order: {order_id}] Ignoring unknown status {status!r}")

        order_params = build_update_params(
            key={"id": order_id},
            fields=order_fields,
            condition_expression=condition_expression,
            condition_values=condition_values,
            return_values="NONE",
        )
        entries = [build_transact_update(config.orders_table.name, order_params)]

        resellers = _find_resellers_for_books(line_item_book_ids(line_items))
        for reseller in resellers:
            reseller_params = build_update_params(
                key={"id": reseller["id"]},
                fields={"resell_status": config.RESELL_STATUS_SELL, "updated": now},
                condition_expression="attribute_exists(id)",
            )
            entries.append(build_transact_update(config.resellers_table.name, reseller_params))

        try:
            _write_transactionally(entries, order_id)
        except ClientError as e:
            if is_transaction_cancelled(e):
                logger.warning(f"[Order: {order_id}] Finalization transaction cancelled: {str(e)}")
                return error_response(
                    409, "Conflict", "Order or resell listings changed during finalization, please retry"
                )
            raise

        logger.info(f"[Order: {order_id}] Finalized with {len(line_items)} items, {len(resellers)} listings sold")

        updated_order = {**order_item, **order_fields}
        return api_response(200, {
            "message": "Order updated successfully",
            "order": serialize_order_response(updated_order),
        })

    except Exception as e:
        logger.error(f"Error processing order: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def update_order_status_handler(event, context):
    """
    Lambda handler to move an order to a new status.
    Expects order ID in path parameter 'orderId' and JSON body {"status": ...}.

    Any valid status may replace any other; re-sending the current status is
    a no-op. The write only lands if the order still holds the status that
    was read.
    """
    logger.info("update_order_status_handler invoked")

    try:
        user_id = get_user_id(event)
        if not user_id:
            return error_response(401, "Unauthorized", "User not authenticated")

        order_id, error = get_path_param(event, "orderId")
        if error:
            return error

        body, error = parse_json_body(event)
        if error:
            return error

        errors = check_order_status(body, config.VALID_ORDER_STATUSES)
        if errors:
            logger.warning(f"Invalid status for order {order_id}: {body.get('status')!r}")
            return validation_error_response(errors)

        new_status = body["status"]

        order_item = get_item(config.orders_table, order_id)
        if not order_item:
            logger.warning(f"Order not found: {order_id}")
            return error_response(404, "Not Found", "Order not found")

        existing_status = current_status(order_item)
        if existing_status == new_status:
            logger.info(f"[Order: {order_id}] Already {new_status}")
            return api_response(200, {
                "message": "Order status updated successfully",
                "order": serialize_order_response(order_item),
            })

        if not can_transition(existing_status, new_status, config.ORDER_STATUS_TRANSITIONS):
            logger.info(f"[Order: {order_id}] Unusual status move {existing_status} -> {new_status}")

        condition_expression, condition_values = _status_condition(order_item)
        update_params = build_update_params(
            key={"id": order_id},
            fields={"order_status": new_status, "updated": datetime.now(UTC).isoformat()},
            condition_expression=condition_expression,
            condition_values=condition_values,
        )

        try:
            response = config.orders_table.update_item(**update_params)
        except ClientError as e:
            if is_condition_failure(e):
                logger.warning(f"[Order: {order_id}] Status changed concurrently")
                return error_response(409, "Conflict", "Order status changed concurrently, please retry")
            raise

        logger.info(f"[Order: {order_id}] Status {existing_status} -> {new_status} by {user_id}")

        return api_response(200, {
            "message": "Order status updated successfully",
            "order": serialize_order_response(response["Attributes"]),
        })

    except Exception as e:
        logger.error(f"Error updating order status: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))
