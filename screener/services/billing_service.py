"""
Billing service for Stripe integration.

Handles subscription webhook events: plan changes, cancellations and
renewals. A renewal starts a new credit period; a plan change alone never
resets the credit counter.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Callable

import stripe
from sqlalchemy.orm import Session

from screener.core import config
from screener.core.plan_limits import DEFAULT_PLAN
from screener.db.models.account import Account
from screener.services import credit_ledger

logger = logging.getLogger(__name__)

# invoice.billing_reason values that open a new billing period
RENEWAL_BILLING_REASONS = {"subscription_cycle", "subscription_create"}


def build_price_mapping() -> Dict[str, str]:
    """Map configured Stripe price IDs to plan tiers (unset prices are skipped)."""
    price_to_plan: Dict[str, str] = {}
    for plan, price_id in (
        ("starter", config.STRIPE_PRICE_ID_STARTER),
        ("pro", config.STRIPE_PRICE_ID_PRO),
        ("business", config.STRIPE_PRICE_ID_BUSINESS),
    ):
        if price_id and not price_id.startswith("price_your_"):
            price_to_plan[price_id] = plan
    return price_to_plan


def get_plan_from_price_id(price_id: Optional[str]) -> Optional[str]:
    """Get plan tier from Stripe price ID."""
    if not price_id:
        return None
    return build_price_mapping().get(price_id)


def _price_id_from_subscription(subscription_data: Dict) -> Optional[str]:
    items = subscription_data.get("items", {}).get("data") or [{}]
    return (items[0].get("price") or {}).get("id")


def _period_end(subscription_data: Dict) -> Optional[datetime]:
    timestamp = subscription_data.get("current_period_end")
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def _find_account(
    db: Session,
    account_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    email: Optional[str] = None,
    subscription_id: Optional[str] = None,
) -> Optional[Account]:
    if account_id:
        account = db.query(Account).filter(Account.id == int(account_id)).first()
        if account:
            return account
    if subscription_id:
        account = db.query(Account).filter(Account.stripe_subscription_id == subscription_id).first()
        if account:
            return account
    if customer_id:
        account = db.query(Account).filter(Account.stripe_customer_id == customer_id).first()
        if account:
            return account
    if email:
        return db.query(Account).filter(Account.email == email).first()
    return None


def handle_checkout_session_completed(event_data: Dict, db: Session) -> Account:
    """
    Handle checkout.session.completed webhook event.

    Attaches the Stripe customer and subscription to the account and sets the
    plan from the session metadata, or from the subscription's price.
    """
    session_data = event_data.get("object", {})
    customer_id = session_data.get("customer")
    subscription_id = session_data.get("subscription")
    metadata = session_data.get("metadata") or {}
    plan = metadata.get("plan")

    account = _find_account(
        db,
        account_id=metadata.get("account_id"),
        customer_id=customer_id,
        email=session_data.get("customer_email") or (session_data.get("customer_details") or {}).get("email"),
    )
    if not account:
        raise ValueError("Cannot identify account from checkout session")

    price_id = None
    period_end = None
    if subscription_id:
        try:
            stripe_sub = stripe.Subscription.retrieve(subscription_id).to_dict()
            price_id = _price_id_from_subscription(stripe_sub)
            period_end = _period_end(stripe_sub)
        except Exception as e:
            logger.warning(f"Failed to retrieve subscription from Stripe: {e}")

    if not plan:
        plan = get_plan_from_price_id(price_id)

    account.stripe_customer_id = customer_id
    account.stripe_subscription_id = subscription_id
    account.plan_status = "active"
    if price_id:
        account.stripe_price_id = price_id
    if period_end:
        account.current_period_end = period_end
    if plan:
        account.plan_tier = plan

    db.commit()
    db.refresh(account)

    logger.info(f"Checkout completed: account_id={account.id}, plan={account.plan_tier}, subscription_id={subscription_id}")
    return account


def handle_subscription_changed(event_data: Dict, db: Session) -> Account:
    """
    Handle customer.subscription.created and customer.subscription.updated.

    Updates plan tier, status and period end. The credit counter is left
    alone: an upgrade mid-period keeps the usage already spent.
    """
    subscription_data = event_data.get("object", {})
    subscription_id = subscription_data.get("id")
    customer_id = subscription_data.get("customer")
    status = subscription_data.get("status") or "active"
    metadata = subscription_data.get("metadata") or {}

    account = _find_account(
        db,
        account_id=metadata.get("account_id"),
        subscription_id=subscription_id,
        customer_id=customer_id,
    )
    if not account:
        raise ValueError(f"Account not found for customer_id={customer_id}")

    account.stripe_customer_id = customer_id or account.stripe_customer_id
    account.stripe_subscription_id = subscription_id
    account.plan_status = status

    price_id = _price_id_from_subscription(subscription_data)
    if price_id:
        account.stripe_price_id = price_id
        plan = get_plan_from_price_id(price_id)
        if plan:
            account.plan_tier = plan

    period_end = _period_end(subscription_data)
    if period_end:
        account.current_period_end = period_end

    db.commit()
    db.refresh(account)

    logger.info(f"Subscription updated: account_id={account.id}, status={status}, plan={account.plan_tier}, subscription_id={subscription_id}")
    return account


def handle_subscription_deleted(event_data: Dict, db: Session) -> Account:
    """
    Handle customer.subscription.deleted webhook event.
    Downgrades the account to the free plan and starts a new credit period.
    """
    subscription_data = event_data.get("object", {})
    subscription_id = subscription_data.get("id")

    account = _find_account(db, subscription_id=subscription_id, customer_id=subscription_data.get("customer"))
    if not account:
        raise ValueError(f"Account not found for subscription_id={subscription_id}")

    account.plan_tier = DEFAULT_PLAN
    account.plan_status = "canceled"
    account.stripe_subscription_id = None  # Keep customer_id for reactivation
    db.commit()

    credit_ledger.rollover(db, account.id)
    db.refresh(account)

    logger.info(f"Subscription deleted: account_id={account.id}, downgraded to {DEFAULT_PLAN}")
    return account


def handle_invoice_payment_succeeded(event_data: Dict, db: Session) -> Optional[Account]:
    """
    Handle invoice.payment_succeeded webhook event.

    Keeps the subscription active; a renewal or first payment opens a new
    billing period.
    """
    invoice_data = event_data.get("object", {})
    subscription_id = invoice_data.get("subscription")
    billing_reason = invoice_data.get("billing_reason")

    if not subscription_id:
        logger.warning("invoice.payment_succeeded: No subscription ID in invoice")
        return None

    account = _find_account(db, subscription_id=subscription_id, customer_id=invoice_data.get("customer"))
    if not account:
        logger.warning(f"invoice.payment_succeeded: Account not found for subscription_id={subscription_id}")
        return None

    account.plan_status = "active"
    db.commit()

    if billing_reason in RENEWAL_BILLING_REASONS:
        credit_ledger.rollover(db, account.id)

    db.refresh(account)
    logger.info(f"Invoice payment succeeded: account_id={account.id}, billing_reason={billing_reason}")
    return account


def handle_invoice_payment_failed(event_data: Dict, db: Session) -> Optional[Account]:
    """
    Handle invoice.payment_failed webhook event.

    Updates subscription status to past_due. Plan and credits are untouched.
    """
    invoice_data = event_data.get("object", {})
    subscription_id = invoice_data.get("subscription")

    if not subscription_id:
        logger.warning("invoice.payment_failed: No subscription ID in invoice")
        return None

    account = _find_account(db, subscription_id=subscription_id, customer_id=invoice_data.get("customer"))
    if not account:
        logger.warning(f"invoice.payment_failed: Account not found for subscription_id={subscription_id}")
        return None

    account.plan_status = "past_due"
    db.commit()

    logger.warning(f"Invoice payment failed: account_id={account.id}, subscription_id={subscription_id}")
    return account


EVENT_HANDLERS: Dict[str, Callable[[Dict, Session], Optional[Account]]] = {
    "checkout.session.completed": handle_checkout_session_completed,
    "customer.subscription.created": handle_subscription_changed,
    "customer.subscription.updated": handle_subscription_changed,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.payment_succeeded": handle_invoice_payment_succeeded,
    "invoice.payment_failed": handle_invoice_payment_failed,
}


def handle_event(event: Dict, db: Session) -> bool:
    """
    Route a verified Stripe event to its handler.

    Returns:
        True if the event type is handled, False if it was ignored
    """
    handler = EVENT_HANDLERS.get(event["type"])
    if handler is None:
        logger.debug(f"Ignoring Stripe event: {event['type']}")
        return False
    handler(event["data"], db)
    return True
