"""
Lambda handlers for payments (gateway orders, verification, cash on delivery)

Gateway payments are confirmed only after their HMAC signature checks out;
cash-on-delivery payments are recorded on submission and completed on delivery.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP

from botocore.exceptions import ClientError

# Support both Lambda deployment and local development
try:
    # Lambda deployment
    import config
    from utils.auth import get_user_id
    from utils.dynamodb import build_update_params, get_item, is_condition_failure, scan_all
    from utils.gateway import GatewayError, verify_payment_signature
    from utils.response import (
        api_response,
        error_response,
        serialize_order_response,
        serialize_payment_response,
        serialize_user_name,
        validation_error_response,
    )
    from utils.validation import (
        check_positive_number,
        check_required,
        get_path_param,
        parse_decimal,
        parse_json_body,
        validate_string_field,
    )
except ImportError:
    # Local development
    import bookstore_backend.config as config
    from bookstore_backend.utils.auth import get_user_id
    from bookstore_backend.utils.dynamodb import build_update_params, get_item, is_condition_failure, scan_all
    from bookstore_backend.utils.gateway import GatewayError, verify_payment_signature
    from bookstore_backend.utils.response import (
        api_response,
        error_response,
        serialize_order_response,
        serialize_payment_response,
        serialize_user_name,
        validation_error_response,
    )
    from bookstore_backend.utils.validation import (
        check_positive_number,
        check_required,
        get_path_param,
        parse_decimal,
        parse_json_body,
        validate_string_field,
    )

logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _resolve_order(user_id: str, order_id: str | None) -> dict | None:
    """
    Find the order a verified payment belongs to.

    Uses the supplied order ID when it names one of the caller's orders.
    Otherwise, including when that order is missing or belongs to another
    user, falls back to the caller's most recently created order.

    Args:
        user_id: Authenticated caller
        order_id: Internal order ID from the request, if any

    Returns:
        dict: Orders table item, or None if nothing matches
    """
    if order_id:
        order_item = get_item(config.orders_table, order_id)
        if order_item and order_item.get("user_id") == user_id:
            return order_item
        logger.warning(f"Order {order_id} not found for user {user_id}, using their latest order")

    response = config.orders_table.query(
        IndexName=config.ORDERS_USER_INDEX,
        KeyConditionExpression="user_id = :uid",
        ExpressionAttributeValues={":uid": user_id},
        ScanIndexForward=False,
        Limit=1,
    )
    items = response.get("Items", [])
    return items[0] if items else None


def create_gateway_order_handler(event, context):
    """
    Lambda handler to create a payment order in the gateway.
    Expects JSON body with:
    - amount: positive amount in major currency units (rupees)

    The amount is sent to the gateway in minor units with a fresh receipt.
    Returns the gateway order plus the public key id the checkout needs.
    """
    logger.info("create_gateway_order_handler invoked")

    try:
        body, error = parse_json_body(event)
        if error:
            return error

        errors = check_positive_number(body, "amount", "Amount must be a positive number")
        if errors:
            return validation_error_response(errors)

        amount = parse_decimal(body["amount"])
        amount_minor = int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))
        receipt = secrets.token_hex(10)

        try:
            gateway_order = config.payment_gateway.create_order(
                amount=amount_minor, currency=config.CURRENCY, receipt=receipt
            )
        except GatewayError as e:
            logger.error(f"Gateway order creation failed: {str(e)}")
            return error_response(500, "Payment Gateway Error", "Something Went Wrong!")

        logger.info(f"Created gateway order {gateway_order.get('id')} for {amount_minor} {config.CURRENCY}")

        return api_response(200, {"data": {**gateway_order, "key": config.RAZORPAY_KEY_ID}})

    except Exception as e:
        logger.error(f"Error creating gateway order: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def verify_payment_handler(event, context):
    """
    Lambda handler to confirm a gateway payment.
    Expects JSON body with:
    - razorpay_orderID: gateway order id
    - razorpay_paymentID: gateway payment id
    - razorpay_signature: hex HMAC-SHA256 of "orderID|paymentID"
    - orderID: (optional) internal order id

    Nothing is read or written unless the signature verifies.
    """
    logger.info("verify_payment_handler invoked")

    try:
        user_id = get_user_id(event)
        if not user_id:
            return error_response(401, "Unauthorized", "User not authenticated")

        body, error = parse_json_body(event)
        if error:
            return error

        errors = check_required(body, {
            "razorpay_orderID": "Gateway order ID is required",
            "razorpay_paymentID": "Gateway payment ID is required",
            "razorpay_signature": "Payment signature is required",
        })
        if errors:
            return validation_error_response(errors)

        if body.get("orderID") is not None:
            error = validate_string_field(body, "orderID", max_length=config.MAX_STRING_LENGTH)
            if error:
                return error

        gateway_order_id = str(body["razorpay_orderID"])
        payment_id = str(body["razorpay_paymentID"])

        if not verify_payment_signature(
            gateway_order_id, payment_id, body["razorpay_signature"], config.RAZORPAY_SECRET
        ):
            logger.warning(f"Invalid payment signature for gateway order {gateway_order_id}")
            return error_response(400, "Bad Request", "Invalid signature")

        order_item = _resolve_order(user_id, body.get("orderID"))

        now = datetime.now(UTC).isoformat()
        payment_item = {
            "id": str(uuid.uuid4()),
            "payment_id": payment_id,
            "user_id": user_id,
            "payment_date": now,
            "payment_method": config.GATEWAY_PAYMENT_METHOD,
            "payment_status": config.PAYMENT_STATUS_COMPLETED,
            "transaction_type": config.TRANSACTION_TYPE_CREDIT,
            "created": now,
        }

        order_id = order_item["id"] if order_item else None
        if order_id:
            payment_item["order_id"] = order_id
        if order_item and order_item.get("total_amount") is not None:
            payment_item["total_payment"] = order_item["total_amount"]

        config.payments_table.put_item(Item=payment_item)

        logger.info(f"Recorded gateway payment {payment_id} for order {order_id}")

        return api_response(200, {"payment": serialize_payment_response(payment_item)})

    except Exception as e:
        logger.error(f"Error verifying payment: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def list_payments_handler(event, context):
    """
    Lambda handler to list every payment with its order and the ordering
    user's name resolved.
    """
    logger.info("list_payments_handler invoked")

    try:
        user_id = get_user_id(event)
        if not user_id:
            return error_response(401, "Unauthorized", "User not authenticated")

        payment_items = scan_all(config.payments_table)
        if not payment_items:
            return error_response(404, "Not Found", "No payment record found")

        logger.info(f"Retrieved {len(payment_items)} payments from DynamoDB")

        orders: dict[str, dict | None] = {}
        users: dict[str, dict | None] = {}
        payments = []
        for item in payment_items:
            payment = serialize_payment_response(item)

            order_id = item.get("order_id")
            if order_id and order_id not in orders:
                orders[order_id] = get_item(config.orders_table, order_id)
            order_item = orders.get(order_id) if order_id else None

            if order_item:
                order = serialize_order_response(order_item)
                order_user_id = order_item.get("user_id")
                if order_user_id and order_user_id not in users:
                    users[order_user_id] = get_item(config.users_table, order_user_id)
                order["user"] = serialize_user_name(users.get(order_user_id)) if order_user_id else None
                payment["order"] = order
            else:
                payment["order"] = None

            payments.append(payment)

        payments.sort(key=lambda x: x.get("created") or "", reverse=True)

        return api_response(200, {"payments": payments})

    except Exception as e:
        logger.error(f"Error listing payments: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def create_cod_payment_handler(event, context):
    """
    Lambda handler to record a cash-on-delivery (or other offline) payment.
    Expects the transaction type in path parameter 'transaction_Type' and a
    JSON body with order_id, payment_method, payment_status and a positive
    total_payment.
    """
    logger.info("create_cod_payment_handler invoked")

    try:
        user_id = get_user_id(event)
        if not user_id:
            return error_response(401, "Unauthorized", "User not authenticated")

        transaction_type, error = get_path_param(event, "transaction_Type")
        if error:
            return error

        body, error = parse_json_body(event)
        if error:
            return error

        errors = check_required(body, {
            "order_id": "Order ID is required",
            "payment_method": "Payment method is required",
            "payment_status": "Payment status is required",
        })
        errors += check_positive_number(body, "total_payment", "Total payment must be a positive number")
        if errors:
            logger.warning(f"COD payment validation failed: {[e['field'] for e in errors]}")
            return validation_error_response(errors)

        for field in ("order_id", "payment_method", "payment_status"):
            error = validate_string_field(body, field, max_length=config.MAX_STRING_LENGTH)
            if error:
                return error

        now = datetime.now(UTC).isoformat()
        payment_item = {
            "id": str(uuid.uuid4()),
            "order_id": body["order_id"],
            "user_id": user_id,
            "payment_method": body["payment_method"],
            "payment_status": body["payment_status"],
            "total_payment": parse_decimal(body["total_payment"]),
            "transaction_type": transaction_type,
            "created": now,
        }

        config.payments_table.put_item(Item=payment_item)

        logger.info(f"Recorded {transaction_type} payment {payment_item['id']} for order {body['order_id']}")

        return api_response(201, {"payment": serialize_payment_response(payment_item)})

    except Exception as e:
        logger.error(f"Error saving payment: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def complete_cod_payment_handler(event, context):
    """
    Lambda handler to mark a cash-on-delivery payment as Completed.
    Expects JSON body with:
    - paymentid: internal payment id

    Missing payments return 404; completing twice is harmless.
    """
    logger.info("complete_cod_payment_handler invoked")

    try:
        user_id = get_user_id(event)
        if not user_id:
            return error_response(401, "Unauthorized", "User not authenticated")

        body, error = parse_json_body(event)
        if error:
            return error

        errors = check_required(body, {"paymentid": "Payment ID is required"})
        if errors:
            return validation_error_response(errors)

        payment_id = str(body["paymentid"])

        update_params = build_update_params(
            key={"id": payment_id},
            fields={
                "payment_status": config.PAYMENT_STATUS_COMPLETED,
                "updated": datetime.now(UTC).isoformat(),
            },
            condition_expression="attribute_exists(id)",
        )

        try:
            response = config.payments_table.update_item(**update_params)
        except ClientError as e:
            if is_condition_failure(e):
                logger.warning(f"Payment not found: {payment_id}")
                return error_response(404, "Not Found", f'Payment "{payment_id}" not found')
            raise

        logger.info(f"Payment {payment_id} marked Completed by {user_id}")

        return api_response(200, {
            "message": "Payment status updated successfully",
            "payment": serialize_payment_response(response["Attributes"]),
        })

    except Exception as e:
        logger.error(f"Error completing payment: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))
