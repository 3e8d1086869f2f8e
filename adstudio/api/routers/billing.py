from fastapi import APIRouter, Header, Request
from starlette.concurrency import run_in_threadpool

from adstudio.api.dependencies import DatabaseSession
from adstudio.core.config import settings
from adstudio.services.billing import handle_stripe_event, verify_event

router = APIRouter(prefix="/billing", tags=["Billing"])


@router.post(
    "/stripe/webhook",
    summary="Stripe webhook",
    description="Grants the plan's monthly credits on `invoice.paid`. Redelivered events are ignored.",
)
async def stripe_webhook(
    request: Request,
    db: DatabaseSession,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
) -> dict:
    payload = await request.body()
    event = verify_event(payload, stripe_signature, settings)
    granted = await run_in_threadpool(handle_stripe_event, db, event, settings)
    return {"received": True, "granted": granted}
