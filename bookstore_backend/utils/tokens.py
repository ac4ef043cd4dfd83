"""
Bearer token utilities for the FindBooks API

Issues and verifies the HS256 JWTs returned by registration and login.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt

TOKEN_LIFETIME = timedelta(days=7)


def issue_token(user_id: str, role: str, secret: str, algorithm: str = "HS256") -> str:
    """
    Sign a token identifying a user.

    Args:
        user_id: User identifier, stored as the 'sub' claim
        role: User role, stored as the 'role' claim
        secret: Signing key
        algorithm: JWT algorithm

    Returns:
        str: Encoded JWT
    """
    now = datetime.now(UTC)
    claims = {"sub": user_id, "role": role, "iat": now, "exp": now + TOKEN_LIFETIME}
    return jwt.encode(claims, secret, algorithm=algorithm)


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> dict:
    """
    Verify a token and return its claims.

    Raises:
        jwt.InvalidTokenError: If the signature, expiry or format is invalid
    """
    return jwt.decode(token, secret, algorithms=[algorithm], options={"require": ["sub", "exp"]})


def extract_bearer_token(header_value: str | None) -> str | None:
    """Return the token from an 'Authorization: Bearer <token>' value."""
    if not header_value:
        return None
    parts = header_value.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        return None
    return parts[1].strip()
