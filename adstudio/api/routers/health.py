from fastapi import APIRouter
from sqlalchemy import text

from adstudio.api.dependencies import DatabaseSession

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check() -> dict:
    return {"status": "healthy", "service": "adstudio-api"}


@router.get("/health/ready")
def readiness_check(db: DatabaseSession) -> dict:
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ready", "database": "connected"}
    except Exception:
        return {"status": "not_ready", "database": "disconnected"}
