import uuid
from typing import Any

import stripe
import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from adstudio.core.config import Settings
from adstudio.core.errors import Unauthorized, ValidationFailed
from adstudio.models import User

from .ledger import CreditLedger

logger = structlog.get_logger()

HANDLED_EVENTS = {"invoice.paid"}


def verify_event(payload: bytes, signature: str | None, settings: Settings) -> Any:
    if not settings.stripe_webhook_secret:
        logger.error("stripe_webhook_secret_missing")
        raise Unauthorized("Webhook secret not configured")
    try:
        return stripe.Webhook.construct_event(payload, signature or "", settings.stripe_webhook_secret)
    except stripe.SignatureVerificationError as e:
        logger.warning("stripe_signature_invalid", error=str(e))
        raise Unauthorized("Invalid signature")
    except ValueError as e:
        raise ValidationFailed("Invalid payload") from e


def _invoice_price_ids(invoice) -> list[str]:
    price_ids = []
    for line in (invoice.get("lines") or {}).get("data") or []:
        price = line.get("price") or {}
        if price.get("id"):
            price_ids.append(price["id"])
            continue
        details = (line.get("pricing") or {}).get("price_details") or {}
        if details.get("price"):
            price_ids.append(details["price"])
    return price_ids


def _invoice_user_id(invoice) -> str | None:
    for source in (
        invoice.get("metadata"),
        (invoice.get("subscription_details") or {}).get("metadata"),
        ((invoice.get("parent") or {}).get("subscription_details") or {}).get("metadata"),
    ):
        if source and source.get("user_id"):
            return source["user_id"]
    return None


def _find_user(db: Session, invoice) -> User | None:
    customer_id = invoice.get("customer")
    if customer_id:
        user = db.query(User).filter(User.stripe_customer_id == customer_id).first()
        if user is not None:
            return user

    user_id = _invoice_user_id(invoice)
    if user_id is None:
        return None
    try:
        user = db.get(User, uuid.UUID(user_id))
    except ValueError:
        return None
    if user is not None and customer_id and user.stripe_customer_id is None:
        user.stripe_customer_id = customer_id
    return user


def handle_stripe_event(db: Session, event, settings: Settings) -> bool:
    """Apply one verified Stripe event. Returns True when credits were granted."""
    event_type = event.get("type", "unknown")
    event_id = event.get("id")
    logger.info("stripe_event_received", event_type=event_type, event_id=event_id)

    if event_type not in HANDLED_EVENTS:
        return False

    invoice = event["data"]["object"]
    credits = sum(settings.stripe_plan_credits.get(price_id, 0) for price_id in _invoice_price_ids(invoice))
    if credits <= 0:
        logger.warning("stripe_invoice_unknown_plan", event_id=event_id, invoice=invoice.get("id"))
        return False

    user = _find_user(db, invoice)
    if user is None:
        logger.error("stripe_invoice_unknown_customer", event_id=event_id, customer=invoice.get("customer"))
        return False

    try:
        granted = CreditLedger(db).record_subscription_credit(user.id, credits, reference=f"stripe:{event_id}")
        db.commit()
    except IntegrityError:
        # A concurrent delivery of the same event won the unique reference
        db.rollback()
        logger.info("stripe_event_duplicate", event_id=event_id)
        return False

    return granted
