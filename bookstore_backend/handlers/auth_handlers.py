"""
Lambda handlers for authentication and user management

Covers email OTP verification, registration, login, password reset,
user read/update/delete, and the bearer-token authorizer that feeds the
caller's identity to every protected route.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import UTC, datetime

import jwt
from botocore.exceptions import ClientError

# Support both Lambda deployment and local development
try:
    # Lambda deployment
    import config
    from utils.auth import get_user_id, is_admin
    from utils.dynamodb import build_update_params, get_item, is_condition_failure, query_index, scan_all
    from utils.mailer import render_otp_message, send_email
    from utils.otp import (
        OTP_LOCKED,
        OTP_MISSING,
        OTP_OK,
        check_secret,
        evaluate_otp,
        expiry_timestamp,
        generate_otp,
        hash_secret,
    )
    from utils.response import api_response, error_response, serialize_user_response, validation_error_response
    from utils.tokens import decode_token, extract_bearer_token, issue_token
    from utils.validation import (
        check_email,
        check_max_bytes,
        check_min_length,
        check_mobile,
        check_not_empty_if_present,
        check_required,
        get_path_param,
        is_blank,
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
    from bookstore_backend.utils.mailer import render_otp_message, send_email
    from bookstore_backend.utils.otp import (
        OTP_LOCKED,
        OTP_MISSING,
        OTP_OK,
        check_secret,
        evaluate_otp,
        expiry_timestamp,
        generate_otp,
        hash_secret,
    )
    from bookstore_backend.utils.response import (
        api_response,
        error_response,
        serialize_user_response,
        validation_error_response,
    )
    from bookstore_backend.utils.tokens import decode_token, extract_bearer_token, issue_token
    from bookstore_backend.utils.validation import (
        check_email,
        check_max_bytes,
        check_min_length,
        check_mobile,
        check_not_empty_if_present,
        check_required,
        get_path_param,
        is_blank,
        parse_json_body,
        validate_string_field,
    )

logger = logging.getLogger()
logger.setLevel(logging.INFO)

USER_UPDATE_FIELDS = {
    "firstname": "first_name",
    "lastname": "last_name",
    "email": "email",
    "mobile": "phone_no",
    "role": "role",
}


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _find_user_by_email(email: str) -> dict | None:
    users = query_index(config.users_table, config.USERS_EMAIL_INDEX, "email", _normalize_email(email))
    return users[0] if users else None


def _issue_token(user_item: dict) -> str:
    return issue_token(
        user_item["id"], user_item.get("role", config.ROLE_USER), config.JWT_KEY, config.JWT_ALGORITHM
    )


def _send_otp(email: str, purpose: str, otp: str) -> None:
    send_email(
        config.ses_client,
        config.SENDER_EMAIL,
        email,
        config.EMAIL_SUBJECT,
        render_otp_message(purpose, otp),
    )


def _clear_user_otp(user_id: str, **extra_fields) -> None:
    fields = {"otp_hash": None, "otp_expires_at": None, "otp_failed_attempts": None, **extra_fields}
    config.users_table.update_item(
        **build_update_params(key={"id": user_id}, fields=fields, allow_remove=True, return_values="NONE")
    )


def register_otp_handler(event, context):
    """
    Lambda handler to email a registration OTP.
    Expects JSON body with:
    - email: address to verify

    Re-requesting replaces the previous code for that address.
    """
    logger.info("register_otp_handler invoked")

    try:
        body, error = parse_json_body(event)
        if error:
            return error

        if is_blank(body.get("email")) or check_email(body):
            return error_response(400, "Bad Request", "Email is required.")

        email = _normalize_email(body["email"])
        otp = generate_otp(config.OTP_LENGTH)

        config.otp_table.put_item(
            Item={
                "email": email,
                "otp_hash": hash_secret(otp),
                "expires_at": expiry_timestamp(config.OTP_EXPIRY_MINUTES),
                "failed_attempts": 0,
                "created": datetime.now(UTC).isoformat(),
            }
        )

        try:
            _send_otp(email, "register", otp)
        except ClientError as e:
            logger.error(f"Error sending registration OTP email: {str(e)}", exc_info=True)
            return error_response(500, "Email Error", "Failed to send OTP email.")

        logger.info("Registration OTP issued")

        return api_response(200, {"message": "OTP sent. Please verify your email.", "email": email})

    except Exception as e:
        logger.error(f"Error sending OTP: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", "Failed to send OTP. Please try again later.")


def verify_register_otp_handler(event, context):
    """
    Lambda handler to check a registration OTP.
    Expects JSON body with email and otp. A correct code is consumed;
    five wrong attempts discard it.
    """
    logger.info("verify_register_otp_handler invoked")

    try:
        body, error = parse_json_body(event)
        if error:
            return error

        if is_blank(body.get("email")) or is_blank(body.get("otp")) or not isinstance(body["email"], str):
            return error_response(400, "Bad Request", "Email and OTP are required")

        email = _normalize_email(body["email"])
        record = config.otp_table.get_item(Key={"email": email}).get("Item")
        if not record:
            return error_response(400, "Bad Request", "OTP not found or expired")

        outcome = evaluate_otp(
            body["otp"],
            record.get("otp_hash"),
            record.get("expires_at"),
            record.get("failed_attempts"),
            config.MAX_OTP_ATTEMPTS,
        )

        if outcome == OTP_OK:
            config.otp_table.delete_item(Key={"email": email})
            logger.info("Registration OTP verified")
            return api_response(200, {"message": "OTP verified successfully"})

        if outcome == OTP_MISSING:
            config.otp_table.delete_item(Key={"email": email})
            return error_response(400, "Bad Request", "OTP not found or expired")

        if outcome == OTP_LOCKED:
            config.otp_table.delete_item(Key={"email": email})
            logger.warning("Registration OTP discarded after too many attempts")
            return error_response(400, "Bad Request", "Too many incorrect attempts. Please request a new OTP.")

        config.otp_table.update_item(
            Key={"email": email},
            UpdateExpression="SET failed_attempts = if_not_exists(failed_attempts, :zero) + :one",
            ExpressionAttributeValues={":zero": 0, ":one": 1},
        )
        return error_response(400, "Bad Request", "Invalid OTP")

    except Exception as e:
        logger.error(f"Error verifying OTP: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", "Server error. Please try again later.")


def register_handler(event, context):
    """
    Lambda handler to register a user.
    Expects JSON body with firstName, lastName, email, mobile, password and
    an optional role (default "User"). Returns the user and a bearer token.
    """
    logger.info("register_handler invoked")

    try:
        body, error = parse_json_body(event)
        if error:
            return error

        errors = check_required(body, {
            "firstName": "First name is required",
            "lastName": "Last name is required",
        })
        errors += check_email(body)
        errors += check_mobile(body)
        errors += check_min_length(body, "password", config.MIN_PASSWORD_LENGTH)
        errors += check_max_bytes(body, "password", config.MAX_PASSWORD_BYTES)
        if errors:
            return validation_error_response(errors)

        for field in ("firstName", "lastName", "role"):
            error = validate_string_field(body, field, max_length=config.MAX_STRING_LENGTH)
            if error:
                return error

        role = body.get("role") or config.ROLE_USER
        if role == config.ROLE_ADMIN:
            logger.warning("Rejected self-registration with the Admin role")
            return error_response(403, "Forbidden", "Admin accounts cannot self-register")

        email = _normalize_email(body["email"])
        if _find_user_by_email(email):
            return error_response(400, "Bad Request", "User with this email already exists")

        user_item = {
            "id": str(uuid.uuid4()),
            "first_name": body["firstName"].strip(),
            "last_name": body["lastName"].strip(),
            "email": email,
            "phone_no": str(body["mobile"]),
            "password_hash": hash_secret(body["password"]),
            "role": role,
            "created": datetime.now(UTC).isoformat(),
        }

        config.users_table.put_item(Item=user_item, ConditionExpression="attribute_not_exists(id)")

        logger.info(f"Registered user {user_item['id']} with role {role}")

        return api_response(201, {
            "user": serialize_user_response(user_item),
            "authtoken": _issue_token(user_item),
        })

    except Exception as e:
        logger.error(f"Error registering user: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def login_handler(event, context):
    """
    Lambda handler to log a user in with email and password.
    Returns {"success": true, "authtoken", "user"}.
    """
    logger.info("login_handler invoked")

    try:
        body, error = parse_json_body(event)
        if error:
            return error

        errors = check_email(body) + check_min_length(body, "password", config.MIN_PASSWORD_LENGTH)
        if errors:
            return validation_error_response(errors)

        user_item = _find_user_by_email(body["email"])
        if not user_item:
            return error_response(400, "Bad Request", "User does not exist")

        if not check_secret(body["password"], user_item.get("password_hash")):
            logger.warning(f"Failed login for user {user_item['id']}")
            return error_response(400, "Bad Request", "Invalid credentials")

        logger.info(f"User {user_item['id']} logged in")

        return api_response(200, {
            "success": True,
            "authtoken": _issue_token(user_item),
            "user": serialize_user_response(user_item),
        })

    except Exception as e:
        logger.error(f"Error logging in: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def forgot_password_handler(event, context):
    """
    Lambda handler to email an OTP to an existing user.
    Expects the purpose in path parameter 'otpmessage' (forgotpassword,
    deliverydetail or reselldelivery) and JSON body with email.
    """
    logger.info("forgot_password_handler invoked")

    try:
        purpose, error = get_path_param(event, "otpmessage")
        if error:
            return error

        if render_otp_message(purpose, "") is None or purpose == "register":
            return error_response(400, "Bad Request", f'Unknown OTP purpose "{purpose}"')

        body, error = parse_json_body(event)
        if error:
            return error

        errors = check_email(body)
        if errors:
            return validation_error_response(errors)

        user_item = _find_user_by_email(body["email"])
        if not user_item:
            return error_response(400, "Bad Request", "User not found")

        otp = generate_otp(config.OTP_LENGTH)
        config.users_table.update_item(
            **build_update_params(
                key={"id": user_item["id"]},
                fields={
                    "otp_hash": hash_secret(otp),
                    "otp_expires_at": expiry_timestamp(config.OTP_EXPIRY_MINUTES),
                    "otp_failed_attempts": 0,
                    "otp_verified_at": None,
                },
                allow_remove=True,
                return_values="NONE",
            )
        )

        try:
            _send_otp(user_item["email"], purpose, otp)
        except ClientError as e:
            logger.error(f"Error sending {purpose} OTP email: {str(e)}", exc_info=True)
            return error_response(500, "Email Error", "Failed to send OTP email.")

        logger.info(f"Issued {purpose} OTP for user {user_item['id']}")

        return api_response(200, {"message": "OTP sent to email"})

    except Exception as e:
        logger.error(f"Error issuing OTP: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def verify_otp_handler(event, context):
    """
    Lambda handler to check an OTP issued by forgot_password_handler.
    On success the code is cleared and the verification time recorded,
    which unlocks reset_password_handler for the OTP lifetime.
    """
    logger.info("verify_otp_handler invoked")

    try:
        body, error = parse_json_body(event)
        if error:
            return error

        errors = check_email(body) + check_required(body, {"otp": "OTP is required"})
        if errors:
            return validation_error_response(errors)

        user_item = _find_user_by_email(body["email"])
        if not user_item:
            return error_response(400, "Bad Request", "Invalid or expired OTP")

        outcome = evaluate_otp(
            body["otp"],
            user_item.get("otp_hash"),
            user_item.get("otp_expires_at"),
            user_item.get("otp_failed_attempts"),
            config.MAX_OTP_ATTEMPTS,
        )

        if outcome == OTP_OK:
            _clear_user_otp(user_item["id"], otp_verified_at=int(time.time()))
            logger.info(f"OTP verified for user {user_item['id']}")
            return api_response(200, {"message": "OTP verified"})

        if outcome == OTP_LOCKED:
            _clear_user_otp(user_item["id"])
            logger.warning(f"OTP discarded for user {user_item['id']} after too many attempts")
            return error_response(400, "Bad Request", "Too many incorrect attempts. Please request a new OTP.")

        if outcome != OTP_MISSING:
            config.users_table.update_item(
                Key={"id": user_item["id"]},
                UpdateExpression="SET otp_failed_attempts = if_not_exists(otp_failed_attempts, :zero) + :one",
                ExpressionAttributeValues={":zero": 0, ":one": 1},
            )
        return error_response(400, "Bad Request", "Invalid or expired OTP")

    except Exception as e:
        logger.error(f"Error verifying OTP: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def reset_password_handler(event, context):
    """
    Lambda handler to set a new password.
    Expects JSON body with email and newPassword. Requires an OTP verified
    through verify_otp_handler within the OTP lifetime; the verification is
    consumed.
    """
    logger.info("reset_password_handler invoked")

    try:
        body, error = parse_json_body(event)
        if error:
            return error

        errors = check_email(body) + check_min_length(body, "newPassword", config.MIN_PASSWORD_LENGTH)
        errors += check_max_bytes(body, "newPassword", config.MAX_PASSWORD_BYTES)
        if errors:
            return validation_error_response(errors)

        user_item = _find_user_by_email(body["email"])
        if not user_item:
            return error_response(400, "Bad Request", "User not found")

        verified_at = user_item.get("otp_verified_at")
        window = config.OTP_EXPIRY_MINUTES * 60
        if verified_at is None or int(time.time()) - int(verified_at) > window:
            logger.warning(f"Password reset without a verified OTP for user {user_item['id']}")
            return error_response(403, "Forbidden", "OTP verification required")

        config.users_table.update_item(
            **build_update_params(
                key={"id": user_item["id"]},
                fields={
                    "password_hash": hash_secret(body["newPassword"]),
                    "otp_verified_at": None,
                    "updated": datetime.now(UTC).isoformat(),
                },
                allow_remove=True,
                condition_expression="attribute_exists(id)",
                return_values="NONE",
            )
        )

        logger.info(f"Password reset for user {user_item['id']}")

        return api_response(200, {"message": "Password reset successfully"})

    except Exception as e:
        logger.error(f"Error resetting password: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def get_user_handler(event, context):
    """Lambda handler returning the caller's own user record."""
    logger.info("get_user_handler invoked")

    try:
        user_id = get_user_id(event)
        if not user_id:
            return error_response(401, "Unauthorized", "User not authenticated")

        user_item = get_item(config.users_table, user_id)
        if not user_item:
            return error_response(404, "Not Found", "No user found")

        return api_response(200, {"user": serialize_user_response(user_item)})

    except Exception as e:
        logger.error(f"Error fetching user data: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def list_users_handler(event, context):
    """Lambda handler listing every user (admin only)."""
    logger.info("list_users_handler invoked")

    try:
        user_id = get_user_id(event)
        if not user_id:
            return error_response(401, "Unauthorized", "User not authenticated")

        if not is_admin(event):
            logger.warning(f"Non-admin user {user_id} attempted to list users")
            return error_response(403, "Forbidden", "Only administrators can list users")

        users = [serialize_user_response(item) for item in scan_all(config.users_table)]

        return api_response(200, {"users": users})

    except Exception as e:
        logger.error(f"Error fetching user data: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def update_user_handler(event, context):
    """
    Lambda handler to update a user.
    Expects JSON body with userId and any of firstname, lastname, email,
    mobile, password, role. Callers may update themselves; admins may update
    anyone and are the only ones who may change a role.
    """
    logger.info("update_user_handler invoked")

    try:
        caller_id = get_user_id(event)
        if not caller_id:
            return error_response(401, "Unauthorized", "User not authenticated")

        body, error = parse_json_body(event)
        if error:
            return error

        errors = check_required(body, {"userId": "User ID is required"})
        errors += check_not_empty_if_present(body, ["firstname", "lastname", "email", "mobile", "password", "role"])
        if not is_blank(body.get("email")):
            errors += check_email(body)
        if not is_blank(body.get("mobile")):
            errors += check_mobile(body)
        if not is_blank(body.get("password")):
            errors += check_min_length(body, "password", config.MIN_PASSWORD_LENGTH)
            errors += check_max_bytes(body, "password", config.MAX_PASSWORD_BYTES)
        if errors:
            return validation_error_response(errors)

        for field in ("userId", "firstname", "lastname", "role"):
            error = validate_string_field(body, field, max_length=config.MAX_STRING_LENGTH)
            if error:
                return error

        user_id = body["userId"]
        caller_is_admin = is_admin(event)
        if user_id != caller_id and not caller_is_admin:
            logger.warning(f"User {caller_id} attempted to update user {user_id}")
            return error_response(403, "Forbidden", "You can only update your own account")

        if "role" in body and not caller_is_admin:
            return error_response(403, "Forbidden", "Only administrators can change roles")

        fields = {}
        for request_field, attribute in USER_UPDATE_FIELDS.items():
            if request_field in body:
                fields[attribute] = str(body[request_field]).strip()

        if "email" in fields:
            fields["email"] = _normalize_email(fields["email"])
            other = _find_user_by_email(fields["email"])
            if other and other["id"] != user_id:
                return error_response(400, "Bad Request", "User with this email already exists")

        if "password" in body:
            logger.info(f"Hashing new password for user {user_id}")
            fields["password_hash"] = hash_secret(body["password"])

        if not fields:
            return error_response(400, "Bad Request", "No valid fields to update")

        fields["updated"] = datetime.now(UTC).isoformat()

        try:
            response = config.users_table.update_item(
                **build_update_params(
                    key={"id": user_id},
                    fields=fields,
                    condition_expression="attribute_exists(id)",
                )
            )
        except ClientError as e:
            if is_condition_failure(e):
                return error_response(404, "Not Found", "No user found")
            raise

        logger.info(f"Updated user {user_id} fields: {[f for f in fields if f != 'password_hash']}")

        return api_response(200, {
            "success": True,
            "message": "User updated successfully",
            "user": serialize_user_response(response["Attributes"]),
        })

    except Exception as e:
        logger.error(f"Error updating user: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def delete_user_handler(event, context):
    """
    Lambda handler to delete a user.
    Expects JSON body with userId. Callers may delete themselves; admins may
    delete anyone.
    """
    logger.info("delete_user_handler invoked")

    try:
        caller_id = get_user_id(event)
        if not caller_id:
            return error_response(401, "Unauthorized", "User not authenticated")

        body, error = parse_json_body(event)
        if error:
            return error

        errors = check_required(body, {"userId": "User ID is required"})
        if errors:
            return validation_error_response(errors)

        user_id = body["userId"]
        if user_id != caller_id and not is_admin(event):
            logger.warning(f"User {caller_id} attempted to delete user {user_id}")
            return error_response(403, "Forbidden", "You can only delete your own account")

        try:
            config.users_table.delete_item(
                Key={"id": user_id}, ConditionExpression="attribute_exists(id)"
            )
        except ClientError as e:
            if is_condition_failure(e):
                return error_response(404, "Not Found", "User not found")
            raise

        logger.info(f"Deleted user {user_id}")

        return api_response(200, {"success": True, "message": "User deleted successfully"})

    except Exception as e:
        logger.error(f"Error deleting user: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def token_authorizer_handler(event, context):
    """
    API Gateway TOKEN authorizer.

    Verifies the "Bearer <jwt>" authorization token and returns an Allow
    policy for the whole API stage with {"sub", "role"} as context, which
    the other handlers read through utils.auth. API Gateway maps the
    "Unauthorized" exception to a 401 response.
    """
    token = extract_bearer_token(event.get("authorizationToken"))
    if not token:
        logger.warning("Authorizer called without a bearer token")
        raise Exception("Unauthorized")

    try:
        claims = decode_token(token, config.JWT_KEY, config.JWT_ALGORITHM)
    except jwt.InvalidTokenError as e:
        logger.warning(f"Token verification failed: {str(e)}")
        raise Exception("Unauthorized") from e

    # arn:aws:execute-api:region:account:api-id/stage/METHOD/path -> api-id/stage/*
    arn_prefix, _, resource_path = event.get("methodArn", "").partition("/")
    stage = resource_path.split("/", 1)[0]
    resource = f"{arn_prefix}/{stage}/*" if stage else event.get("methodArn", "*")

    return {
        "principalId": claims["sub"],
        "policyDocument": {
            "Version": "2012-10-17",
            "Statement": [
                {"Action": "execute-api:Invoke", "Effect": "Allow", "Resource": resource}
            ],
        },
        "context": {"sub": claims["sub"], "role": claims.get("role", "")},
    }
