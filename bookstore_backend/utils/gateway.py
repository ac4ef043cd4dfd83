"""
Payment gateway utilities for the FindBooks API

Provides the Razorpay REST client used to create gateway orders and the
signature check that guards payment confirmations.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Raised when the payment gateway cannot create an order."""


class RazorpayClient:
    """
    Client for the Razorpay Orders API (REST).

    One instance is built at import time in config and shared by every
    invocation of the warm Lambda container.
    """

    def __init__(self, key_id: str, key_secret: str, base_url: str, timeout: float = 5.0):
        self.key_id = key_id
        self.key_secret = key_secret
        timeout_config = httpx.Timeout(timeout, read=8.0)
        self.client = httpx.Client(
            base_url=base_url,
            auth=(key_id, key_secret),
            timeout=timeout_config,
        )

    def create_order(self, amount: int, currency: str, receipt: str) -> dict[str, Any]:
        """
        Create an order in the gateway.

        Args:
            amount: Amount in minor currency units (paise)
            currency: ISO 4217 currency code
            receipt: Opaque receipt identifier, unique per call

        Returns:
            dict: The gateway order object

        Raises:
            GatewayError: On transport errors or non-2xx responses
        """
        payload = {"amount": amount, "currency": currency, "receipt": receipt}
        try:
            response = self.client.post("/orders", json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Gateway rejected order creation (HTTP {e.response.status_code})")
            raise GatewayError(f"Gateway returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Gateway unreachable: {str(e)}")
            raise GatewayError(str(e)) from e

    def close(self) -> None:
        self.client.close()


def compute_payment_signature(gateway_order_id: str, payment_id: str, secret: str) -> str:
    """
    Compute the hex HMAC-SHA256 the gateway signs a payment with.

    The signed message is "{gateway_order_id}|{payment_id}".
    """
    message = f"{gateway_order_id}|{payment_id}"
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_payment_signature(
    gateway_order_id: str, payment_id: str, signature: str, secret: str
) -> bool:
    """
    Check a gateway signature in constant time.

    Args:
        gateway_order_id: Gateway-issued order ID
        payment_id: Gateway-issued payment ID
        signature: Signature supplied by the client
        secret: Server-held gateway secret

    Returns:
        bool: True only if the signature matches exactly
    """
    if not secret or not isinstance(signature, str):
        return False
    expected = compute_payment_signature(gateway_order_id, payment_id, secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))
