import json

import pytest


def create_mock_event(user_id="test-user-123", is_admin=False, path_params=None, body=None):
    """Create a mock API Gateway event with token authorizer context

    Args:
        user_id: Caller user ID (sub claim), None for an anonymous request
        is_admin: Whether the caller holds the Admin role
        path_params: Path parameters dict
        body: Request body (dict or JSON string)

    Returns:
        dict: Mock API Gateway event with authentication claims
    """
    event = {"requestContext": {}}

    if user_id:
        event["requestContext"]["authorizer"] = {
            "claims": {
                "sub": user_id,
                "role": "Admin" if is_admin else "User",
            }
        }

    if path_params:
        event["pathParameters"] = path_params

    if body is not None:
        event["body"] = json.dumps(body) if isinstance(body, dict) else body

    return event


@pytest.fixture
def make_event():
    return create_mock_event
