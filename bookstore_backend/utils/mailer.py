"""
Email utilities for the FindBooks API

Thin wrapper over SES used to deliver OTP codes.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

OTP_MESSAGES = {
    "register": (
        "Welcome to FINDBOOKS! Your verification OTP is: {otp}.\n"
        "It will expire in 10 minutes. Please do not share this code with anyone."
    ),
    "forgotpassword": (
        "Your OTP to reset your password is: {otp}.\n"
        "Do not share this code with anyone. It will expire in 10 minutes."
    ),
    "deliverydetail": (
        "Your delivery confirmation OTP is: {otp}.\n"
        "Please provide this code to the delivery agent to receive your order."
    ),
    "reselldelivery": (
        "Your OTP to collect the resell product is: {otp}.\n"
        "Please provide this code to the delivery agent to complete the pickup.\n"
        "Do not share this code with anyone. It is valid for 10 minutes."
    ),
}


def send_email(ses_client, sender: str, recipient: str, subject: str, text: str) -> None:
    """
    Send a plain-text email through SES.

    Raises:
        botocore.exceptions.ClientError: If SES rejects the message
    """
    ses_client.send_email(
        Source=sender,
        Destination={"ToAddresses": [recipient]},
        Message={
            "Subject": {"Data": subject, "Charset": "UTF-8"},
            "Body": {"Text": {"Data": text, "Charset": "UTF-8"}},
        },
    )
    logger.info("OTP email dispatched")


def render_otp_message(purpose: str, otp: str) -> str | None:
    """Return the email text for an OTP purpose, or None if the purpose is unknown."""
    template = OTP_MESSAGES.get(purpose)
    if template is None:
        return None
    return template.format(otp=otp)
