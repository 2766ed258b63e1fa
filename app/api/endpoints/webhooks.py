"""
Razorpay webhook endpoint.

Razorpay signs the raw request body with the webhook secret
(``X-Razorpay-Signature``). The signature is checked before the payload is
parsed; events then drive lifecycle transitions for the user who owns the
referenced subscription.

Webhook Setup in Razorpay:
1. Dashboard > Settings > Webhooks > Add New Webhook
2. URL: https://your-api.com/api/subscription/webhook
3. Events: subscription.activated, subscription.cancelled,
   subscription.paused, subscription.resumed, payment.captured
4. Secret: the value of RAZORPAY_WEBHOOK_SECRET
"""
import json
import logging

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import RAZORPAY_WEBHOOK_SECRET
from app.core.database import get_db
from app.core.exceptions import ValidationFailed
from app.core.payment_gateway import verify_webhook_signature
from app.core.rate_limit import limiter
from app.core.subscription_service import SubscriptionService
from app.schemas.common import ApiResponse
from app.schemas.subscription import WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter()


def get_webhook_secret() -> str | None:
    return RAZORPAY_WEBHOOK_SECRET


@limiter.exempt
@router.post("/webhook", response_model=ApiResponse[WebhookAck])
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
    webhook_secret: str | None = Depends(get_webhook_secret),
):
    """
    Handle a Razorpay webhook delivery.

    Flow:
    1. Read the raw body
    2. Verify ``X-Razorpay-Signature`` when a webhook secret is configured
    3. Parse the event and apply it

    Raises:
        ValidationFailed 400: On a signature mismatch or a malformed body
    """
    body = await request.body()

    if webhook_secret:
        if not verify_webhook_signature(body, x_razorpay_signature, webhook_secret):
            logger.warning("Rejected Razorpay webhook with invalid signature")
            raise ValidationFailed("Invalid webhook signature")
    else:
        logger.warning("RAZORPAY_WEBHOOK_SECRET not configured; webhook signature not checked")

    try:
        event = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationFailed("Invalid webhook payload") from e
    if not isinstance(event, dict):
        raise ValidationFailed("Invalid webhook payload")

    logger.info("Razorpay webhook received: %s", event.get("event"))
    ack = await SubscriptionService.handle_webhook_event(db, event)
    return ApiResponse(data=WebhookAck(**ack), message="Webhook processed")
