"""
Stripe webhook endpoint.
"""
import json
import logging
import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from screener.core import config
from screener.db.session import get_db
from screener.services.billing_service import handle_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing Webhook"])


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    db: Session = Depends(get_db),
):
    """
    Receive Stripe events.

    Signature failures answer 400. Handler errors are logged and answered
    with 200 so Stripe does not keep redelivering events we cannot apply.
    """
    payload = await request.body()

    if not config.STRIPE_WEBHOOK_SECRET:
        logger.error("STRIPE_WEBHOOK_SECRET not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Billing webhook is not configured"
        )

    if not stripe_signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe signature"
        )

    try:
        stripe.Webhook.construct_event(
            payload=payload,
            sig_header=stripe_signature,
            secret=config.STRIPE_WEBHOOK_SECRET,
        )
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Webhook verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Webhook verification failed"
        )

    # Verified; handlers work on the plain JSON body
    event = json.loads(payload)
    event_type = event["type"]
    try:
        handled = handle_event(event, db)
    except Exception as e:
        db.rollback()
        logger.error(f"Error handling Stripe event {event_type}: {e}", exc_info=True)
        return {"status": "error", "event": event_type, "error": "Event could not be applied"}

    logger.info(f"Stripe event processed: type={event_type}, handled={handled}")
    return {"status": "success", "event": event_type, "handled": handled}
