import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from bookon.api.deps import STAFF_ROLES, get_current_user, http_error, require_roles
from bookon.core.errors import BookOnError
from bookon.db.session import get_db
from bookon.models.booking import Booking
from bookon.models.user import User
from bookon.schemas.cancellation import (
    CancellationRequestIn,
    CancellationResultOut,
    CancellationStatsOut,
    EligibilityOut,
    ProcessRefundIn,
    ProviderCancellationIn,
    RefundOut,
)
from bookon.services import cancellation_service
from bookon.services.cancellation_service import CancellationOutcome, refund_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cancellations", tags=["cancellations"])


def _result_out(outcome: CancellationOutcome) -> CancellationResultOut:
    return CancellationResultOut(
        bookingId=outcome.booking_id,
        refundAmount=outcome.refund_amount,
        creditAmount=outcome.credit_amount,
        adminFee=outcome.admin_fee,
        refundTransactionId=outcome.refund_transaction_id,
        creditId=outcome.credit_id,
    )


@router.post("/check-eligibility/{booking_id}", response_model=EligibilityOut)
def check_eligibility(
    booking_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("parent")),
):
    try:
        verdict = cancellation_service.check_eligibility(db, booking_id, parent_id=user.id)
    except BookOnError as e:
        raise http_error(e)
    return EligibilityOut.from_verdict(verdict)


@router.post("/request", response_model=CancellationResultOut, status_code=201)
def request_cancellation(
    body: CancellationRequestIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("parent")),
):
    try:
        outcome = cancellation_service.process_cancellation(db, body.bookingId, user.id, body.reason)
    except BookOnError as e:
        raise http_error(e)
    logger.info("Cancellation requested via API by %s for booking %s", user.id, body.bookingId)
    return _result_out(outcome)


@router.post("/provider-cancel/{booking_id}", response_model=CancellationResultOut, status_code=201)
def provider_cancel(
    booking_id: str,
    body: ProviderCancellationIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*STAFF_ROLES)),
):
    try:
        outcome = cancellation_service.process_provider_cancellation(
            db, booking_id, user.id, body.reason, refund_method=body.refundMethod
        )
    except BookOnError as e:
        raise http_error(e)
    logger.info("Provider cancellation via API by %s for booking %s (%s)", user.id, booking_id, body.refundMethod)
    return _result_out(outcome)


@router.get("/history/{booking_id}", response_model=list[RefundOut])
def cancellation_history(
    booking_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    b = db.get(Booking, booking_id)
    if not b or (user.role not in STAFF_ROLES and b.parent_id != user.id):
        raise HTTPException(status_code=404, detail="Not found")
    return cancellation_service.get_cancellation_history(db, booking_id)


@router.get("/stats", response_model=CancellationStatsOut)
def cancellation_stats(
    venueId: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*STAFF_ROLES)),
):
    return cancellation_service.get_cancellation_stats(db, venue_id=venueId)


@router.get("/pending", response_model=list[RefundOut])
def pending_refunds(
    venueId: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*STAFF_ROLES)),
):
    return cancellation_service.list_pending_refunds(db, venue_id=venueId)


@router.post("/process-refund/{refund_id}", response_model=RefundOut)
def process_refund(
    refund_id: str,
    body: ProcessRefundIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*STAFF_ROLES)),
):
    try:
        refund = cancellation_service.process_refund(
            db, refund_id, user.id, stripe_refund_id=body.stripeRefundId, notes=body.notes
        )
    except BookOnError as e:
        raise http_error(e)
    return refund_to_dict(refund)
