"""
One-time password utilities for the FindBooks API

OTPs are numeric codes emailed to users. Only their bcrypt hash is stored,
together with an expiry timestamp and a failed-attempt counter.
"""

from __future__ import annotations

import secrets
import time

import bcrypt


def generate_otp(length: int = 6) -> str:
    """Return a zero-padded random numeric code of the given length."""
    return f"{secrets.randbelow(10 ** length):0{length}d}"


def hash_secret(value: str) -> str:
    """bcrypt-hash an OTP or password for storage."""
    return bcrypt.hashpw(value.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_secret(value: str, stored_hash: str | None) -> bool:
    """Compare a candidate OTP or password with its stored bcrypt hash."""
    if not value or not stored_hash:
        return False
    try:
        return bcrypt.checkpw(str(value).encode("utf-8"), stored_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in storage
        return False


def expiry_timestamp(minutes: int) -> int:
    """Epoch seconds `minutes` from now, usable as a DynamoDB TTL attribute."""
    return int(time.time()) + minutes * 60


def is_expired(expires_at) -> bool:
    """True when an epoch-seconds expiry is missing or in the past."""
    if expires_at is None:
        return True
    return int(expires_at) < int(time.time())


OTP_OK = "ok"
OTP_MISSING = "missing"
OTP_INVALID = "invalid"
OTP_LOCKED = "locked"


def evaluate_otp(otp, otp_hash: str | None, expires_at, failed_attempts, max_attempts: int) -> str:
    """
    Classify an OTP attempt against the stored state.

    Returns:
        str: OTP_OK on a match, OTP_MISSING when no live code exists,
             OTP_LOCKED when this failure uses up the last attempt,
             OTP_INVALID for any other mismatch
    """
    if not otp_hash or is_expired(expires_at):
        return OTP_MISSING
    if check_secret(str(otp), otp_hash):
        return OTP_OK
    if int(failed_attempts or 0) + 1 >= max_attempts:
        return OTP_LOCKED
    return OTP_INVALID
