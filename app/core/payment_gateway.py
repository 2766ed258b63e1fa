"""
Razorpay client and signature verification.

The REST API is called directly with httpx using HTTP basic auth
(key id / key secret). Every gateway failure surfaces as
``PaymentGatewayError``; callers decide whether it aborts the request
or is tolerated.
"""
import hashlib
import hmac
import logging

import httpx
from fastapi import Depends

from app.core.config import (
    RAZORPAY_KEY_ID,
    RAZORPAY_KEY_SECRET,
    RAZORPAY_API_URL,
    GATEWAY_TIMEOUT_SECONDS,
)
from app.core.exceptions import ServiceUnavailable

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    """A Razorpay API call failed or returned an error response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# --- Signatures ---

def generate_signature(secret: str, message: str | bytes) -> str:
    """Hex HMAC-SHA256 of ``message`` keyed with ``secret``."""
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _matches(expected: str, provided: str | None) -> bool:
    if not provided:
        return False
    return hmac.compare_digest(expected, provided.strip())


def verify_payment_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    """Order checkout: HMAC_SHA256(secret, "<order_id>|<payment_id>")."""
    if not order_id or not payment_id:
        return False
    return _matches(generate_signature(secret, f"{order_id}|{payment_id}"), signature)


def verify_subscription_signature(
    payment_id: str, subscription_id: str, signature: str, secret: str
) -> bool:
    """Subscription checkout: HMAC_SHA256(secret, "<payment_id>|<subscription_id>")."""
    if not payment_id or not subscription_id:
        return False
    return _matches(generate_signature(secret, f"{payment_id}|{subscription_id}"), signature)


def verify_webhook_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Webhook: HMAC_SHA256(webhook_secret, raw request body)."""
    return _matches(generate_signature(secret, body), signature)


# --- REST client ---

class RazorpayGateway:
    """Thin async wrapper over the Razorpay v1 REST API."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = RAZORPAY_API_URL,
        timeout: float = GATEWAY_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _request(self, method: str, path: str, payload: dict | None = None) -> dict:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            auth=(self.key_id, self.key_secret),
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.request(method, path, json=payload)
            except httpx.HTTPError as e:
                logger.error("Razorpay %s %s transport error: %s", method, path, e)
                raise PaymentGatewayError(f"Payment gateway unreachable: {e}") from e

        if response.is_error:
            try:
                description = response.json().get("error", {}).get("description")
            except ValueError:
                description = None
            message = description or response.text or f"HTTP {response.status_code}"
            logger.error(
                "Razorpay %s %s returned %s: %s", method, path, response.status_code, message
            )
            raise PaymentGatewayError(message, status_code=response.status_code)

        return response.json()

    async def create_order(self, amount: int, currency: str, receipt: str, notes: dict | None = None) -> dict:
        """Create an order for ``amount`` paise."""
        return await self._request("POST", "/orders", {
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "payment_capture": 1,
            "notes": notes or {},
        })

    async def create_plan(self, period: str, interval: int, name: str, amount: int, currency: str) -> dict:
        return await self._request("POST", "/plans", {
            "period": period,
            "interval": interval,
            "item": {
                "name": name,
                "amount": amount,
                "currency": currency,
            },
        })

    async def create_subscription(self, plan_id: str, total_count: int, notes: dict | None = None) -> dict:
        return await self._request("POST", "/subscriptions", {
            "plan_id": plan_id,
            "total_count": total_count,
            "customer_notify": 1,
            "notes": notes or {},
        })

    async def cancel_subscription(self, subscription_id: str, cancel_at_cycle_end: bool = False) -> dict:
        return await self._request(
            "POST",
            f"/subscriptions/{subscription_id}/cancel",
            {"cancel_at_cycle_end": 1 if cancel_at_cycle_end else 0},
        )

    async def pause_subscription(self, subscription_id: str) -> dict:
        return await self._request("POST", f"/subscriptions/{subscription_id}/pause", {"pause_at": "now"})

    async def resume_subscription(self, subscription_id: str) -> dict:
        return await self._request("POST", f"/subscriptions/{subscription_id}/resume", {"resume_at": "now"})

    async def fetch_payment(self, payment_id: str) -> dict:
        return await self._request("GET", f"/payments/{payment_id}")

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        return verify_payment_signature(order_id, payment_id, signature, self.key_secret)

    def verify_subscription_signature(self, payment_id: str, subscription_id: str, signature: str) -> bool:
        return verify_subscription_signature(payment_id, subscription_id, signature, self.key_secret)


def get_optional_payment_gateway() -> RazorpayGateway | None:
    """The configured Razorpay client, or None when keys are missing."""
    if not RAZORPAY_KEY_ID or not RAZORPAY_KEY_SECRET:
        return None
    return RazorpayGateway(RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET)


def get_payment_gateway(
    gateway: RazorpayGateway | None = Depends(get_optional_payment_gateway),
) -> RazorpayGateway:
    """
    FastAPI dependency returning the configured Razorpay client.

    Raises:
        ServiceUnavailable: If Razorpay keys are not configured
    """
    if gateway is None:
        raise ServiceUnavailable("Payment service not available")
    return gateway
