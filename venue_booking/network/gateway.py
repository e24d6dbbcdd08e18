"""
Razorpay payment gateway client.

Only the request/response contract matters to the engine: order creation
(amount in minor units, currency, receipt) and verification of the
HMAC-SHA256 signature the gateway attaches to payment callbacks. Requests use
a short timeout and are not retried here; callers retry.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, cast
from urllib.parse import urljoin

import requests
import structlog

from venue_booking.config import (
    GATEWAY_TIMEOUT_SECONDS,
    RAZORPAY_BASE_URL,
    RAZORPAY_KEY_ID,
    RAZORPAY_KEY_SECRET,
)
from venue_booking.exceptions import GatewayError, GatewayNotConfiguredError
from venue_booking.metrics import gateway_latency, gateway_requests

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class GatewayOrder:
    order_id: str
    amount_minor: int
    currency: str
    receipt: str


def compute_signature(secret: str, order_id: str, payment_id: str) -> str:
    """
    Signature the gateway attaches to a successful payment.

    Args:
        secret: Gateway key secret shared with the merchant
        order_id: Gateway order id
        payment_id: Gateway payment id

    Returns:
        str: hex HMAC-SHA256 of "order_id|payment_id"
    """
    body = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def signatures_match(expected: str, provided: str | None) -> bool:
    if not provided:
        return False
    return hmac.compare_digest(expected, provided)


class RazorpayGateway:
    def __init__(
        self,
        key_id: Optional[str] = RAZORPAY_KEY_ID,
        key_secret: Optional[str] = RAZORPAY_KEY_SECRET,
        base_url: str = RAZORPAY_BASE_URL,
        timeout: float = GATEWAY_TIMEOUT_SECONDS,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def _require_configured(self) -> None:
        if not self.configured:
            raise GatewayNotConfiguredError(
                "Payment gateway not configured. Please contact support."
            )

    def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> GatewayOrder:
        """
        Create a gateway order.

        Args:
            amount_minor: Amount in the currency's minor unit (paise for INR)
            currency: ISO currency code
            receipt: Merchant receipt id (max 40 chars)
            notes: Free-form key/value notes stored with the order

        Returns:
            GatewayOrder: the created order

        Raises:
            GatewayNotConfiguredError: credentials are missing
            GatewayError: request failed, timed out, or was rejected
        """
        self._require_configured()

        url = urljoin(self.base_url, "orders")
        payload: Dict[str, Any] = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt[:40],
            "notes": notes or {},
        }

        start_time = time.time()
        try:
            res = requests.post(
                url,
                json=payload,
                auth=(cast(str, self.key_id), cast(str, self.key_secret)),
                timeout=self.timeout,
            )
        except requests.RequestException as err:
            gateway_requests.labels(operation="create_order", status_code="error").inc()
            logger.warning("gateway_request_failed", operation="create_order", error=str(err))
            raise GatewayError(f"Payment gateway order creation failed: {err}") from err
        finally:
            gateway_latency.labels(operation="create_order").observe(time.time() - start_time)

        gateway_requests.labels(operation="create_order", status_code=str(res.status_code)).inc()

        if res.status_code >= 400:
            description = "Payment gateway order creation failed"
            try:
                description = res.json().get("error", {}).get("description") or description
            except ValueError:
                pass
            logger.warning(
                "gateway_order_rejected",
                status_code=res.status_code,
                description=description,
                receipt=receipt,
            )
            raise GatewayError(description)

        data = cast(Dict[str, Any], res.json())
        order = GatewayOrder(
            order_id=data["id"],
            amount_minor=int(data.get("amount", amount_minor)),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt),
        )
        logger.info(
            "gateway_order_created",
            order_id=order.order_id,
            amount_minor=order.amount_minor,
            currency=order.currency,
        )
        return order

    def expected_signature(self, order_id: str, payment_id: str) -> str:
        self._require_configured()
        return compute_signature(cast(str, self.key_secret), order_id, payment_id)
