from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from bookon.api.deps import STAFF_ROLES, http_error, require_roles
from bookon.core.config import settings
from bookon.core.errors import BookOnError
from bookon.db.session import get_db
from bookon.models.user import User
from bookon.schemas.wallet import (
    CreditOut,
    CreditUsageOut,
    IssueCreditIn,
    TransferCreditsIn,
    UseCreditsIn,
    WalletBalanceOut,
    WalletStatsOut,
)
from bookon.services import wallet_service

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("/balance", response_model=WalletBalanceOut)
def balance(
    providerId: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("parent")),
):
    b = wallet_service.get_wallet_balance(db, user.id, provider_id=providerId)
    return WalletBalanceOut(
        totalCredits=b.total_credits,
        availableCredits=b.available_credits,
        usedCredits=b.used_credits,
        expiredCredits=b.expired_credits,
        creditsByProvider=b.credits_by_provider,
        credits=[CreditOut.from_model(c) for c in b.credits],
    )


@router.get("/history", response_model=list[CreditOut])
def history(
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("parent")),
):
    return [CreditOut.from_model(c) for c in wallet_service.get_credit_history(db, user.id, limit=limit)]


@router.post("/use", response_model=list[CreditUsageOut])
def use_credits(
    body: UseCreditsIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("parent")),
):
    try:
        return wallet_service.use_credits(db, user.id, body.amount, body.bookingId, body.transactionId)
    except BookOnError as e:
        raise http_error(e)


@router.post("/transfer")
def transfer(
    body: TransferCreditsIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("parent")),
):
    if body.fromProviderId == body.toProviderId:
        raise HTTPException(status_code=400, detail="Source and destination provider must differ")
    try:
        usage, credit = wallet_service.transfer_credits(
            db, user.id, body.fromProviderId, body.toProviderId, body.amount
        )
    except BookOnError as e:
        raise http_error(e)
    return {
        "usage": [CreditUsageOut(**u) for u in usage],
        "credit": CreditOut.from_model(credit),
    }


@router.post("/issue", response_model=CreditOut, status_code=201)
def issue(
    body: IssueCreditIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*STAFF_ROLES)),
):
    if not db.get(User, body.parentId):
        raise HTTPException(status_code=404, detail="Parent not found")
    try:
        credit = wallet_service.issue_credit(
            db,
            body.parentId,
            body.amount,
            body.source,
            provider_id=body.providerId,
            booking_id=body.bookingId,
            description=body.description,
            expiry_days=body.expiryDays,
            actor_user_id=user.id,
        )
    except BookOnError as e:
        raise http_error(e)
    return CreditOut.from_model(credit)


@router.get("/expiring", response_model=list[CreditOut])
def expiring(
    days: int = Query(settings.WALLET_EXPIRY_WARNING_DAYS, ge=1, le=365),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*STAFF_ROLES)),
):
    return [CreditOut.from_model(c) for c in wallet_service.get_expiring_credits(db, days_ahead=days)]


@router.post("/process-expired")
def process_expired(
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*STAFF_ROLES)),
):
    try:
        count = wallet_service.process_expired_credits(db)
    except BookOnError as e:
        raise http_error(e)
    return {"ok": True, "expired": count}


@router.get("/stats", response_model=WalletStatsOut)
def stats(
    providerId: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*STAFF_ROLES)),
):
    return wallet_service.get_wallet_stats(db, provider_id=providerId)
