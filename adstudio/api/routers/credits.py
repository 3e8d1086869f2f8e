from fastapi import APIRouter, Query

from adstudio.api.dependencies import CurrentUser, DatabaseSession
from adstudio.api.schemas import CreditBalanceResponse, CreditHistoryEntry, CreditHistoryResponse
from adstudio.services import CreditLedger

router = APIRouter(prefix="/credits", tags=["Credits"])


@router.get("", response_model=CreditBalanceResponse, summary="Credit balance")
async def get_balance(current_user: CurrentUser, db: DatabaseSession) -> CreditBalanceResponse:
    return CreditBalanceResponse(credits=CreditLedger(db).balance(current_user.id))


@router.get(
    "/history",
    response_model=CreditHistoryResponse,
    summary="Credit history",
    description="Debits, refunds and grants, newest first.",
)
async def get_history(
    current_user: CurrentUser,
    db: DatabaseSession,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
) -> CreditHistoryResponse:
    entries = CreditLedger(db).history(current_user.id, limit=limit, offset=skip)
    return CreditHistoryResponse(entries=[CreditHistoryEntry.model_validate(e) for e in entries])
