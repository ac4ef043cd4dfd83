"""
Configuration and client initialization for the FindBooks Lambda handlers

This module provides:
- AWS service clients (DynamoDB, SES)
- The payment gateway client shared by every invocation
- Environment variable configuration
- Constants used across handlers
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import boto3

# Support both Lambda deployment and local development
try:
    from utils.gateway import RazorpayClient
except ImportError:
    from bookstore_backend.utils.gateway import RazorpayClient

if TYPE_CHECKING:
    from mypy_boto3_dynamodb.client import DynamoDBClient
    from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource, Table
    from mypy_boto3_ses.client import SESClient

# Constants
MAX_STRING_LENGTH = 500  # Maximum length for string fields
MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_BYTES = 72  # bcrypt input limit
OTP_LENGTH = 6
OTP_EXPIRY_MINUTES = 10
MAX_OTP_ATTEMPTS = 5
MAX_TRANSACTION_ITEMS = 100  # DynamoDB TransactWriteItems limit
CURRENCY = "INR"
DEFAULT_BOOK_IMAGE = "default.jpg"

ORDER_STATUS_PENDING = "Pending"
ORDER_STATUS_SHIPPED = "Shipped"
ORDER_STATUS_DELIVERED = "Delivered"
ORDER_STATUS_CANCELLED = "Cancelled"
VALID_ORDER_STATUSES = [
    ORDER_STATUS_PENDING,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
]
# Usual forward moves; other moves are still accepted and only logged
ORDER_STATUS_TRANSITIONS = {
    ORDER_STATUS_PENDING: {ORDER_STATUS_SHIPPED, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_SHIPPED: {ORDER_STATUS_DELIVERED, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_DELIVERED: set(),
    ORDER_STATUS_CANCELLED: set(),
}

RESELL_STATUS_SELL = "Sell"
PAYMENT_STATUS_COMPLETED = "Completed"
TRANSACTION_TYPE_CREDIT = "credit"
GATEWAY_PAYMENT_METHOD = "Razorpay"
ROLE_ADMIN = "Admin"
ROLE_USER = "User"

# Global secondary indexes
USERS_EMAIL_INDEX = "EmailIndex"
BOOKS_ISBN_INDEX = "IsbnIndex"
BOOKS_SUBCATEGORY_INDEX = "SubcategoryIndex"
SUBCATEGORIES_NAME_INDEX = "NameIndex"
ORDERS_CART_INDEX = "CartIndex"
ORDERS_USER_INDEX = "UserIndex"
RESELLERS_USER_INDEX = "UserIndex"

# Environment configuration
AWS_REGION = os.environ.get("AWS_REGION", "ap-south-1")
USERS_TABLE_NAME = os.environ.get("USERS_TABLE")
OTP_TABLE_NAME = os.environ.get("OTP_TABLE")
BOOKS_TABLE_NAME = os.environ.get("BOOKS_TABLE")
SUBCATEGORIES_TABLE_NAME = os.environ.get("SUBCATEGORIES_TABLE")
CARTS_TABLE_NAME = os.environ.get("CARTS_TABLE")
ORDERS_TABLE_NAME = os.environ.get("ORDERS_TABLE")
PAYMENTS_TABLE_NAME = os.environ.get("PAYMENTS_TABLE")
RESELLERS_TABLE_NAME = os.environ.get("RESELLERS_TABLE")

RAZORPAY_KEY_ID = os.environ.get("RAZORPAY_KEY_ID", "")
RAZORPAY_SECRET = os.environ.get("RAZORPAY_SECRET", "")
RAZORPAY_API_URL = os.environ.get("RAZORPAY_API_URL", "https://api.razorpay.com/v1")

JWT_KEY = os.environ.get("JWT_KEY", "")
JWT_ALGORITHM = "HS256"
SENDER_EMAIL = os.environ.get("SENDER_EMAIL", "no-reply@findbooks.example")
EMAIL_SUBJECT = "FINDBOOKS - OTP Verification Code"

# Initialize AWS clients with type hints
dynamodb: "DynamoDBServiceResource" = boto3.resource("dynamodb", region_name=AWS_REGION)
dynamodb_client: "DynamoDBClient" = dynamodb.meta.client
ses_client: "SESClient" = boto3.client("ses", region_name=AWS_REGION)

# One gateway client per process, used by reference from the payment handlers
payment_gateway = RazorpayClient(
    key_id=RAZORPAY_KEY_ID,
    key_secret=RAZORPAY_SECRET,
    base_url=RAZORPAY_API_URL,
)


def _table(name: str | None) -> "Table":
    # For type checking: treat as non-None (tests will mock these)
    # For production: Lambda environment must have these env vars set
    if name:
        return dynamodb.Table(name)
    return None  # type: ignore[return-value]


users_table: "Table" = _table(USERS_TABLE_NAME)
otp_table: "Table" = _table(OTP_TABLE_NAME)
books_table: "Table" = _table(BOOKS_TABLE_NAME)
subcategories_table: "Table" = _table(SUBCATEGORIES_TABLE_NAME)
carts_table: "Table" = _table(CARTS_TABLE_NAME)
orders_table: "Table" = _table(ORDERS_TABLE_NAME)
payments_table: "Table" = _table(PAYMENTS_TABLE_NAME)
resellers_table: "Table" = _table(RESELLERS_TABLE_NAME)
