"""
Lambda handlers for the FindBooks API

This module serves as the entry point for all Lambda functions.
It re-exports handlers from their respective modules for Lambda function configuration.

Architecture:
- API Gateway -> token_authorizer_handler (JWT) -> caller id in authorizer context
- API Gateway -> Lambda -> DynamoDB (users, books, carts, orders, payments, resell listings)
- Lambda -> Razorpay Orders API (gateway orders)
- Lambda -> SES (OTP emails)

Handlers:
1. Auth: register_otp, verify_register_otp, register, login, forgot_password,
   verify_otp, reset_password, get_user, list_users, update_user, delete_user,
   token_authorizer
2. Books: create_book, list_books, update_book, delete_book, list_books_by_subcategory
3. Payments: create_gateway_order, verify_payment, list_payments, create_cod_payment,
   complete_cod_payment
4. Orders: finalize_order (addorder), update_order_status
5. Resell listings: list_user_sell_orders, list_sell_orders, list_reseller_books,
   update_sell_order_status, delete_reseller_book
"""

# Re-export handlers for Lambda function configuration
# Support both local development (bookstore_backend.X) and Lambda deployment (X)
try:
    # Lambda deployment (files are in root, not in bookstore_backend/)
    from handlers.auth_handlers import (
        delete_user_handler,
        forgot_password_handler,
        get_user_handler,
        list_users_handler,
        login_handler,
        register_handler,
        register_otp_handler,
        reset_password_handler,
        token_authorizer_handler,
        update_user_handler,
        verify_otp_handler,
        verify_register_otp_handler,
    )
    from handlers.book_handlers import (
        create_book_handler,
        delete_book_handler,
        list_books_by_subcategory_handler,
        list_books_handler,
        update_book_handler,
    )
    from handlers.order_handlers import finalize_order_handler, update_order_status_handler
    from handlers.payment_handlers import (
        complete_cod_payment_handler,
        create_cod_payment_handler,
        create_gateway_order_handler,
        list_payments_handler,
        verify_payment_handler,
    )
    from handlers.reseller_handlers import (
        delete_reseller_book_handler,
        list_reseller_books_handler,
        list_sell_orders_handler,
        list_user_sell_orders_handler,
        update_sell_order_status_handler,
    )
    from config import books_table, orders_table, payments_table, resellers_table, users_table
except ImportError:
    # Local development / testing (with bookstore_backend package structure)
    from bookstore_backend.handlers.auth_handlers import (
        delete_user_handler,
        forgot_password_handler,
        get_user_handler,
        list_users_handler,
        login_handler,
        register_handler,
        register_otp_handler,
        reset_password_handler,
        token_authorizer_handler,
        update_user_handler,
        verify_otp_handler,
        verify_register_otp_handler,
    )
    from bookstore_backend.handlers.book_handlers import (
        create_book_handler,
        delete_book_handler,
        list_books_by_subcategory_handler,
        list_books_handler,
        update_book_handler,
    )
    from bookstore_backend.handlers.order_handlers import finalize_order_handler, update_order_status_handler
    from bookstore_backend.handlers.payment_handlers import (
        complete_cod_payment_handler,
        create_cod_payment_handler,
        create_gateway_order_handler,
        list_payments_handler,
        verify_payment_handler,
    )
    from bookstore_backend.handlers.reseller_handlers import (
        delete_reseller_book_handler,
        list_reseller_books_handler,
        list_sell_orders_handler,
        list_user_sell_orders_handler,
        update_sell_order_status_handler,
    )
    from bookstore_backend.config import books_table, orders_table, payments_table, resellers_table, users_table

# Make handlers available at module level for Lambda
__all__ = [
    "register_otp_handler",
    "verify_register_otp_handler",
    "register_handler",
    "login_handler",
    "forgot_password_handler",
    "verify_otp_handler",
    "reset_password_handler",
    "get_user_handler",
    "list_users_handler",
    "update_user_handler",
    "delete_user_handler",
    "token_authorizer_handler",
    "create_book_handler",
    "list_books_handler",
    "update_book_handler",
    "delete_book_handler",
    "list_books_by_subcategory_handler",
    "create_gateway_order_handler",
    "verify_payment_handler",
    "list_payments_handler",
    "create_cod_payment_handler",
    "complete_cod_payment_handler",
    "finalize_order_handler",
    "update_order_status_handler",
    "list_user_sell_orders_handler",
    "list_sell_orders_handler",
    "list_reseller_books_handler",
    "update_sell_order_status_handler",
    "delete_reseller_book_handler",
    # Also export config for tests
    "users_table",
    "books_table",
    "orders_table",
    "payments_table",
    "resellers_table",
]
