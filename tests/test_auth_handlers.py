import json
import time
from unittest.mock import Mock, patch

import pytest
from botocore.exceptions import ClientError

from bookstore_backend import config, handler
from bookstore_backend.utils.otp import check_secret, hash_secret
from bookstore_backend.utils.tokens import decode_token, issue_token

JWT_SECRET = "auth-test-signing-key-0123456789abcdef"

USER = {
    "id": "user-1",
    "first_name": "Asha",
    "last_name": "Rao",
    "email": "asha@example.com",
    "phone_no": "9876543210",
    "role": "User",
}


@pytest.fixture
def jwt_key():
    with patch.object(config, "JWT_KEY", JWT_SECRET):
        yield JWT_SECRET


def users_table_with(user=None):
    """Create a mock Users table whose EmailIndex query finds the given user"""
    mock_users_table = Mock()
    mock_users_table.query.return_value = {"Items": [user] if user else []}
    return mock_users_table


def test_register_otp_stores_hash_and_emails_code():
    """Test a registration OTP is stored hashed and sent through SES"""

    mock_otp_table = Mock()
    mock_ses = Mock()

    with patch.object(config, "otp_table", mock_otp_table), \
         patch.object(config, "ses_client", mock_ses):
        resp = handler.register_otp_handler({"body": json.dumps({"email": " Asha@Example.com "})}, None)

    assert resp["statusCode"] == 200
    assert json.loads(resp["body"])["email"] == "asha@example.com"

    item = mock_otp_table.put_item.call_args.kwargs["Item"]
    assert item["email"] == "asha@example.com"
    assert item["failed_attempts"] == 0
    assert item["expires_at"] > int(time.time())

    text = mock_ses.send_email.call_args.kwargs["Message"]["Body"]["Text"]["Data"]
    otp = text.split("OTP is: ")[1][:6]
    assert otp.isdigit()
    assert item["otp_hash"] != otp
    assert check_secret(otp, item["otp_hash"]) is True


def test_register_otp_requires_email():
    """Test a missing or malformed email is rejected"""

    for body in ({}, {"email": "not-an-email"}):
        resp = handler.register_otp_handler({"body": json.dumps(body)}, None)
        assert resp["statusCode"] == 400
        assert json.loads(resp["body"])["message"] == "Email is required."


def test_register_otp_email_failure():
    """Test an SES failure is reported as an email error"""

    mock_ses = Mock()
    mock_ses.send_email.side_effect = ClientError(
        {"Error": {"Code": "MessageRejected", "Message": "rejected"}}, "SendEmail"
    )

    with patch.object(config, "otp_table", Mock()), \
         patch.object(config, "ses_client", mock_ses):
        resp = handler.register_otp_handler({"body": json.dumps({"email": "asha@example.com"})}, None)

    assert resp["statusCode"] == 500
    assert json.loads(resp["body"])["message"] == "Failed to send OTP email."


def otp_table_with(otp="123456", expires_in=600, failed_attempts=0):
    mock_otp_table = Mock()
    mock_otp_table.get_item.return_value = {"Item": {
        "email": "asha@example.com",
        "otp_hash": hash_secret(otp),
        "expires_at": int(time.time()) + expires_in,
        "failed_attempts": failed_attempts,
    }}
    return mock_otp_table


def test_verify_register_otp_success():
    """Test a correct code is accepted and consumed"""

    mock_otp_table = otp_table_with()
    event = {"body": json.dumps({"email": "asha@example.com", "otp": "123456"})}

    with patch.object(config, "otp_table", mock_otp_table):
        resp = handler.verify_register_otp_handler(event, None)

    assert resp["statusCode"] == 200
    assert json.loads(resp["body"])["message"] == "OTP verified successfully"
    mock_otp_table.delete_item.assert_called_once_with(Key={"email": "asha@example.com"})


def test_verify_register_otp_wrong_code_counts_attempt():
    """Test a wrong code increments the failed attempt counter"""

    mock_otp_table = otp_table_with()
    event = {"body": json.dumps({"email": "asha@example.com", "otp": "000000"})}

    with patch.object(config, "otp_table", mock_otp_table):
        resp = handler.verify_register_otp_handler(event, None)

    assert resp["statusCode"] == 400
    assert json.loads(resp["body"])["message"] == "Invalid OTP"
    mock_otp_table.update_item.assert_called_once()
    mock_otp_table.delete_item.assert_not_called()


def test_verify_register_otp_locks_after_max_attempts():
    """Test the code is discarded once the attempt limit is reached"""

    mock_otp_table = otp_table_with(failed_attempts=4)
    event = {"body": json.dumps({"email": "asha@example.com", "otp": "000000"})}

    with patch.object(config, "otp_table", mock_otp_table):
        resp = handler.verify_register_otp_handler(event, None)

    assert resp["statusCode"] == 400
    assert "Too many incorrect attempts" in json.loads(resp["body"])["message"]
    mock_otp_table.delete_item.assert_called_once()


def test_verify_register_otp_expired():
    """Test an expired code is rejected even when correct"""

    mock_otp_table = otp_table_with(expires_in=-5)
    event = {"body": json.dumps({"email": "asha@example.com", "otp": "123456"})}

    with patch.object(config, "otp_table", mock_otp_table):
        resp = handler.verify_register_otp_handler(event, None)

    assert resp["statusCode"] == 400
    assert json.loads(resp["body"])["message"] == "OTP not found or expired"


def test_register_creates_user_and_token(jwt_key):
    """Test registration stores a hashed password and returns a usable token"""

    mock_users_table = users_table_with()
    body = {
        "firstName": "Asha",
        "lastName": "Rao",
        "email": "Asha@Example.com",
        "mobile": "9876543210",
        "password": "secret123",
    }

    with patch.object(config, "users_table", mock_users_table):
        resp = handler.register_handler({"body": json.dumps(body)}, None)

    assert resp["statusCode"] == 201
    item = mock_users_table.put_item.call_args.kwargs["Item"]
    assert item["email"] == "asha@example.com"
    assert item["role"] == "User"
    assert item["password_hash"] != "secret123"
    assert check_secret("secret123", item["password_hash"]) is True

    result = json.loads(resp["body"])
    assert "password_hash" not in result["user"]
    claims = decode_token(result["authtoken"], jwt_key)
    assert claims["sub"] == item["id"]
    assert claims["role"] == "User"


def test_register_validation_reports_each_field():
    """Test every invalid registration field is reported"""

    body = {"firstName": "", "lastName": "Rao", "email": "bad", "mobile": "12", "password": "123"}

    resp = handler.register_handler({"body": json.dumps(body)}, None)

    assert resp["statusCode"] == 400
    fields = [error["field"] for error in json.loads(resp["body"])["errors"]]
    assert fields == ["firstName", "email", "mobile", "password"]


def test_register_rejects_password_over_72_bytes():
    """Test passwords longer than bcrypt accepts are a field error, not a server error"""

    body = {
        "firstName": "Asha",
        "lastName": "Rao",
        "email": "asha@example.com",
        "mobile": "9876543210",
        "password": "x" * 100,
    }
    mock_users_table = users_table_with()

    with patch.object(config, "users_table", mock_users_table):
        resp = handler.register_handler({"body": json.dumps(body)}, None)

    assert resp["statusCode"] == 400
    assert json.loads(resp["body"])["errors"] == [
        {"field": "password", "message": "Password must be at most 72 bytes"}
    ]
    mock_users_table.put_item.assert_not_called()


def test_register_password_limit_counts_utf8_bytes(jwt_key):
    """Test the password limit is measured in UTF-8 bytes rather than characters"""

    base = {"firstName": "Asha", "lastName": "Rao", "email": "asha@example.com", "mobile": "9876543210"}
    mock_users_table = users_table_with()

    with patch.object(config, "users_table", mock_users_table):
        too_long = handler.register_handler({"body": json.dumps(dict(base, password="é" * 40))}, None)
        at_limit = handler.register_handler({"body": json.dumps(dict(base, password="é" * 36))}, None)

    assert too_long["statusCode"] == 400
    assert at_limit["statusCode"] == 201
    assert mock_users_table.put_item.call_count == 1


def test_register_rejects_admin_role():
    """Test the Admin role cannot be self-assigned"""

    body = {
        "firstName": "Asha",
        "lastName": "Rao",
        "email": "asha@example.com",
        "mobile": "9876543210",
        "password": "secret123",
        "role": "Admin",
    }
    mock_users_table = users_table_with()

    with patch.object(config, "users_table", mock_users_table):
        resp = handler.register_handler({"body": json.dumps(body)}, None)

    assert resp["statusCode"] == 403
    mock_users_table.put_item.assert_not_called()


def test_register_duplicate_email(jwt_key):
    """Test registering an existing email is rejected"""

    body = {
        "firstName": "Asha",
        "lastName": "Rao",
        "email": "asha@example.com",
        "mobile": "9876543210",
        "password": "secret123",
    }
    mock_users_table = users_table_with(USER)

    with patch.object(config, "users_table", mock_users_table):
        resp = handler.register_handler({"body": json.dumps(body)}, None)

    assert resp["statusCode"] == 400
    mock_users_table.put_item.assert_not_called()


def test_login_success(jwt_key):
    """Test valid credentials return a token for the user"""

    user = dict(USER, password_hash=hash_secret("secret123"))
    mock_users_table = users_table_with(user)
    event = {"body": json.dumps({"email": "asha@example.com", "password": "secret123"})}

    with patch.object(config, "users_table", mock_users_table):
        resp = handler.login_handler(event, None)

    assert resp["statusCode"] == 200
    body = json.loads(resp["body"])
    assert body["success"] is True
    assert body["user"]["email"] == "asha@example.com"
    assert decode_token(body["authtoken"], jwt_key)["sub"] == "user-1"


def test_login_wrong_password():
    """Test a wrong password is rejected"""

    user = dict(USER, password_hash=hash_secret("secret123"))
    mock_users_table = users_table_with(user)
    event = {"body": json.dumps({"email": "asha@example.com", "password": "wrong-pass"})}

    with patch.object(config, "users_table", mock_users_table):
        resp = handler.login_handler(event, None)

    assert resp["statusCode"] == 400
    assert json.loads(resp["body"])["message"] == "Invalid credentials"


def test_login_unknown_user():
    """Test an unknown email is rejected"""

    event = {"body": json.dumps({"email": "nobody@example.com", "password": "secret123"})}

    with patch.object(config, "users_table", users_table_with()):
        resp = handler.login_handler(event, None)

    assert resp["statusCode"] == 400
    assert json.loads(resp["body"])["message"] == "User does not exist"


def test_forgot_password_issues_otp():
    """Test an OTP is stored on the user and emailed with the purpose template"""

    mock_users_table = users_table_with(USER)
    mock_ses = Mock()
    event = {"pathParameters": {"otpmessage": "forgotpassword"}, "body": json.dumps({"email": "asha@example.com"})}

    with patch.object(config, "users_table", mock_users_table), \
         patch.object(config, "ses_client", mock_ses):
        resp = handler.forgot_password_handler(event, None)

    assert resp["statusCode"] == 200
    kwargs = mock_users_table.update_item.call_args.kwargs
    assert kwargs["Key"] == {"id": "user-1"}
    assert ":otp_hash" in kwargs["ExpressionAttributeValues"]
    assert "REMOVE #otp_verified_at" in kwargs["UpdateExpression"]
    assert "reset your password" in mock_ses.send_email.call_args.kwargs["Message"]["Body"]["Text"]["Data"]


def test_forgot_password_unknown_purpose():
    """Test unsupported OTP purposes are rejected"""

    for purpose in ("register", "spam"):
        event = {"pathParameters": {"otpmessage": purpose}, "body": json.dumps({"email": "asha@example.com"})}
        resp = handler.forgot_password_handler(event, None)
        assert resp["statusCode"] == 400


def test_forgot_password_unknown_user():
    """Test an unknown email is reported"""

    event = {"pathParameters": {"otpmessage": "forgotpassword"}, "body": json.dumps({"email": "x@example.com"})}

    with patch.object(config, "users_table", users_table_with()):
        resp = handler.forgot_password_handler(event, None)

    assert resp["statusCode"] == 400
    assert json.loads(resp["body"])["message"] == "User not found"


def test_verify_otp_records_verification():
    """Test a correct OTP is cleared and the verification time stored"""

    user = dict(
        USER,
        otp_hash=hash_secret("654321"),
        otp_expires_at=int(time.time()) + 600,
        otp_failed_attempts=0,
    )
    mock_users_table = users_table_with(user)
    event = {"body": json.dumps({"email": "asha@example.com", "otp": "654321"})}

    with patch.object(config, "users_table", mock_users_table):
        resp = handler.verify_otp_handler(event, None)

    assert resp["statusCode"] == 200
    kwargs = mock_users_table.update_item.call_args.kwargs
    assert "REMOVE #otp_hash, #otp_expires_at, #otp_failed_attempts" in kwargs["UpdateExpression"]
    assert ":otp_verified_at" in kwargs["ExpressionAttributeValues"]


def test_verify_otp_wrong_code():
    """Test a wrong OTP is rejected and counted"""

    user = dict(USER, otp_hash=hash_secret("654321"), otp_expires_at=int(time.time()) + 600)
    mock_users_table = users_table_with(user)
    event = {"body": json.dumps({"email": "asha@example.com", "otp": "111111"})}

    with patch.object(config, "users_table", mock_users_table):
        resp = handler.verify_otp_handler(event, None)

    assert resp["statusCode"] == 400
    assert json.loads(resp["body"])["message"] == "Invalid or expired OTP"
    assert "otp_failed_attempts" in mock_users_table.update_item.call_args.kwargs["UpdateExpression"]


def test_reset_password_after_verification():
    """Test the password is replaced once an OTP was verified recently"""

    user = dict(USER, otp_verified_at=int(time.time()) - 30)
    mock_users_table = users_table_with(user)
    event = {"body": json.dumps({"email": "asha@example.com", "newPassword": "brand-new"})}

    with patch.object(config, "users_table", mock_users_table):
        resp = handler.reset_password_handler(event, None)

    assert resp["statusCode"] == 200
    kwargs = mock_users_table.update_item.call_args.kwargs
    assert check_secret("brand-new", kwargs["ExpressionAttributeValues"][":password_hash"]) is True
    assert "REMOVE #otp_verified_at" in kwargs["UpdateExpression"]


def test_reset_password_requires_verified_otp():
    """Test resets without a recent OTP verification are refused"""

    for user in (USER, dict(USER, otp_verified_at=int(time.time()) - 3600)):
        mock_users_table = users_table_with(user)
        event = {"body": json.dumps({"email": "asha@example.com", "newPassword": "brand-new"})}

        with patch.object(config, "users_table", mock_users_table):
            resp = handler.reset_password_handler(event, None)

        assert resp["statusCode"] == 403
        mock_users_table.update_item.assert_not_called()


def test_reset_password_rejects_password_over_72_bytes():
    """Test an over-long new password is a field error and nothing is written"""

    user = dict(USER, otp_verified_at=int(time.time()) - 30)
    mock_users_table = users_table_with(user)
    event = {"body": json.dumps({"email": "asha@example.com", "newPassword": "x" * 100})}

    with patch.object(config, "users_table", mock_users_table):
        resp = handler.reset_password_handler(event, None)

    assert resp["statusCode"] == 400
    assert json.loads(resp["body"])["errors"][0]["field"] == "newPassword"
    mock_users_table.update_item.assert_not_called()


def test_get_user_returns_caller(make_event):
    """Test the caller's own record is returned without secrets"""

    mock_users_table = Mock()
    mock_users_table.get_item.return_value = {"Item": dict(USER, password_hash="hash")}

    with patch.object(config, "users_table", mock_users_table):
        resp = handler.get_user_handler(make_event(user_id="user-1"), None)

    assert resp["statusCode"] == 200
    assert json.loads(resp["body"])["user"]["id"] == "user-1"
    assert "password_hash" not in json.loads(resp["body"])["user"]
    mock_users_table.get_item.assert_called_once_with(Key={"id": "user-1"})


def test_get_user_requires_authentication(make_event):
    resp = handler.get_user_handler(make_event(user_id=None), None)

    assert resp["statusCode"] == 401


def test_list_users_admin_only(make_event):
    """Test only admins can list users"""

    mock_users_table = Mock()
    mock_users_table.scan.return_value = {"Items": [USER]}

    with patch.object(config, "users_table", mock_users_table):
        denied = handler.list_users_handler(make_event(), None)
        allowed = handler.list_users_handler(make_event(is_admin=True), None)

    assert denied["statusCode"] == 403
    assert allowed["statusCode"] == 200
    assert json.loads(allowed["body"])["users"][0]["email"] == "asha@example.com"


def test_update_user_self(make_event):
    """Test users can update their own profile and password"""

    mock_users_table = users_table_with()
    mock_users_table.update_item.return_value = {"Attributes": dict(USER, first_name="Asha Devi")}

    event = make_event(user_id="user-1", body={"userId": "user-1", "firstname": "Asha Devi", "password": "another1"})
    with patch.object(config, "users_table", mock_users_table):
        resp = handler.update_user_handler(event, None)

    assert resp["statusCode"] == 200
    assert json.loads(resp["body"])["user"]["first_name"] == "Asha Devi"
    values = mock_users_table.update_item.call_args.kwargs["ExpressionAttributeValues"]
    assert values[":first_name"] == "Asha Devi"
    assert check_secret("another1", values[":password_hash"]) is True


def test_update_user_other_forbidden(make_event):
    """Test users cannot update someone else"""

    mock_users_table = Mock()
    event = make_event(user_id="user-2", body={"userId": "user-1", "firstname": "X"})

    with patch.object(config, "users_table", mock_users_table):
        resp = handler.update_user_handler(event, None)

    assert resp["statusCode"] == 403
    mock_users_table.update_item.assert_not_called()


def test_update_user_role_requires_admin(make_event):
    """Test only admins may change roles"""

    mock_users_table = Mock()
    mock_users_table.update_item.return_value = {"Attributes": dict(USER, role="Admin")}

    with patch.object(config, "users_table", mock_users_table):
        denied = handler.update_user_handler(
            make_event(user_id="user-1", body={"userId": "user-1", "role": "Admin"}), None
        )
        allowed = handler.update_user_handler(
            make_event(user_id="admin-1", is_admin=True, body={"userId": "user-1", "role": "Admin"}), None
        )

    assert denied["statusCode"] == 403
    assert allowed["statusCode"] == 200


def test_update_user_not_found(make_event):
    """Test updating a missing user returns 404"""

    mock_users_table = Mock()
    mock_users_table.update_item.side_effect = ClientError(
        {"Error": {"Code": "ConditionalCheckFailedException", "Message": "failed"}}, "UpdateItem"
    )

    with patch.object(config, "users_table", mock_users_table):
        resp = handler.update_user_handler(
            make_event(user_id="admin-1", is_admin=True, body={"userId": "missing", "firstname": "X"}), None
        )

    assert resp["statusCode"] == 404


def test_delete_user(make_event):
    """Test users can delete themselves but not others"""

    mock_users_table = Mock()

    with patch.object(config, "users_table", mock_users_table):
        allowed = handler.delete_user_handler(make_event(user_id="user-1", body={"userId": "user-1"}), None)
        denied = handler.delete_user_handler(make_event(user_id="user-2", body={"userId": "user-1"}), None)

    assert allowed["statusCode"] == 200
    assert denied["statusCode"] == 403
    mock_users_table.delete_item.assert_called_once_with(
        Key={"id": "user-1"}, ConditionExpression="attribute_exists(id)"
    )


def test_token_authorizer_allows_valid_token(jwt_key):
    """Test a valid bearer token yields an Allow policy with caller context"""

    token = issue_token("user-1", "Admin", jwt_key)
    event = {
        "authorizationToken": f"Bearer {token}",
        "methodArn": "arn:aws:execute-api:ap-south-1:123456789012:abc123/prod/GET/user",
    }

    policy = handler.token_authorizer_handler(event, None)

    assert policy["principalId"] == "user-1"
    assert policy["context"] == {"sub": "user-1", "role": "Admin"}
    statement = policy["policyDocument"]["Statement"][0]
    assert statement["Effect"] == "Allow"
    assert statement["Resource"] == "arn:aws:execute-api:ap-south-1:123456789012:abc123/prod/*"


def test_token_authorizer_rejects_bad_tokens(jwt_key):
    """Test missing, malformed and foreign tokens are unauthorized"""

    foreign = issue_token("user-1", "User", jwt_key + "-other")

    for header in (None, "Basic abc", "Bearer not-a-jwt", f"Bearer {foreign}"):
        with pytest.raises(Exception, match="Unauthorized"):
            handler.token_authorizer_handler({"authorizationToken": header, "methodArn": "arn"}, None)
