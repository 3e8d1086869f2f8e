import structlog
from fastapi import APIRouter, Query, Request
from starlette.concurrency import run_in_threadpool

from adstudio.api.dependencies import DatabaseSession, Providers, Publisher
from adstudio.core.config import settings
from adstudio.core.errors import NotFound, Unauthorized, ValidationFailed
from adstudio.core.security import verify_callback_token
from adstudio.models import ProviderId
from adstudio.services import JobResolver

logger = structlog.get_logger()
router = APIRouter(prefix="/callbacks", tags=["Callbacks"], include_in_schema=False)


@router.post("/{provider}")
async def provider_callback(
    provider: str,
    request: Request,
    db: DatabaseSession,
    providers: Providers,
    publisher: Publisher,
    token: str | None = Query(None),
) -> dict:
    """Vendor webhook. Always 200 once authenticated so vendors stop retrying."""
    try:
        provider_id = ProviderId(provider.upper())
    except ValueError:
        raise NotFound("Unknown provider")

    if not verify_callback_token(provider_id.value, token):
        logger.warning("callback_token_rejected", provider=provider_id.value)
        raise Unauthorized("Invalid callback token")

    try:
        payload = await request.json()
    except ValueError:
        logger.warning("callback_invalid_json", provider=provider_id.value)
        return {"success": False}

    resolver = JobResolver(db, providers, publisher, rehost=settings.rehost_media)
    try:
        applied = await run_in_threadpool(
            resolver.handle_callback, provider_id, payload if isinstance(payload, dict) else {}
        )
    except ValidationFailed as e:
        logger.warning("callback_rejected", provider=provider_id.value, error=e.message)
        return {"success": False}
    except Exception:
        db.rollback()
        logger.exception("callback_failed", provider=provider_id.value)
        return {"success": False}

    return {"success": applied}
