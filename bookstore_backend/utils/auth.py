"""
Authentication and authorization utilities for the FindBooks API

Provides functions to extract the caller's identity and role from the
API Gateway authorizer context.
"""


def _get_claims(event: dict) -> dict:
    authorizer = (event.get("requestContext") or {}).get("authorizer") or {}
    # JWT/Cognito authorizers nest claims; the token authorizer passes a flat context
    return authorizer.get("claims") or authorizer


def get_user_id(event: dict) -> str | None:
    """
    Extract the authenticated user ID (sub) from the authorizer context.

    Args:
        event: API Gateway event with authorizer context

    Returns:
        str: The caller's user ID, or None if not authenticated
    """
    return _get_claims(event).get("sub") or None


def get_user_role(event: dict) -> str | None:
    """
    Extract the caller's role from the authorizer context.

    Args:
        event: API Gateway event with authorizer context

    Returns:
        str: Role name (e.g. 'Admin'), or None if absent
    """
    return _get_claims(event).get("role") or None


def is_admin(event: dict) -> bool:
    """
    Check if the caller holds the Admin role.

    Args:
        event: API Gateway event with authorizer context

    Returns:
        bool: True if the caller is an admin, False otherwise
    """
    return get_user_role(event) == "Admin"
