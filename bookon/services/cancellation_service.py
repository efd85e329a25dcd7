"""Applies cancellation verdicts to the booking store and the refund/credit ledgers.

Each cancellation is one transaction: the booking row is locked, the verdict
is computed, the status flips from pending/confirmed to cancelled with a
conditional UPDATE, and the refund transaction, wallet credit and audit row
are written before a single commit. A second caller racing on the same
booking finds the status already changed and gets IneligibleCancellationError,
so ledger rows are written at most once per booking.
"""
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bookon.core.config import settings
from bookon.core.errors import (
    BookOnError,
    IneligibleCancellationError,
    NotFoundError,
    PersistenceFailure,
    RefundAlreadyProcessedError,
)
from bookon.models.activity import Activity
from bookon.models.booking import Booking
from bookon.models.refund_transaction import RefundTransaction
from bookon.models.user import User
from bookon.models.wallet_credit import WalletCredit
from bookon.services.audit_service import log_audit
from bookon.services.cancellation_policy import (
    CANCELLABLE_STATUSES,
    ZERO,
    BookingSnapshot,
    CancellationVerdict,
    CourseSchedule,
    as_utc,
    determine_eligibility,
    money,
)
from bookon.services.email_service import cancellation_email, queue_email
from bookon.services.wallet_service import build_credit

logger = logging.getLogger(__name__)

PROVIDER_REFUND_METHODS = ("cash", "credit", "parent_choice")


@dataclass
class CancellationOutcome:
    booking_id: str
    refund_amount: Decimal
    credit_amount: Decimal
    admin_fee: Decimal
    refund_transaction_id: str | None = None
    credit_id: str | None = None
    verdict: CancellationVerdict | None = None


def snapshot_for(booking: Booking, activity: Activity | None) -> BookingSnapshot:
    course = None
    if activity is not None and activity.is_course:
        course = CourseSchedule(
            start=activity.course_start,
            end=activity.course_end,
            total_sessions=activity.total_sessions,
        )
    return BookingSnapshot(
        booking_id=booking.id,
        amount=booking.amount,
        payment_method=booking.payment_method,
        activity_at=booking.activity_at,
        status=booking.status,
        course=course,
    )


def _load_booking(db: Session, booking_id: str, parent_id: str | None = None, lock: bool = False) -> Booking:
    stmt = select(Booking).where(Booking.id == booking_id)
    if parent_id is not None:
        stmt = stmt.where(Booking.parent_id == parent_id)
    if lock:
        stmt = stmt.with_for_update()
    booking = db.execute(stmt).scalar_one_or_none()
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


def _mark_cancelled(db: Session, booking: Booking, note: str, now: datetime):
    notes = f"{booking.notes}\n{note}".strip() if booking.notes else note
    result = db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.status.in_(CANCELLABLE_STATUSES))
        .values(status="cancelled", notes=notes, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        current = db.execute(select(Booking.status).where(Booking.id == booking.id)).scalar_one_or_none()
        raise IneligibleCancellationError(f"Booking is already {current or 'cancelled'}")
    db.expire(booking, ["status", "notes", "updated_at"])


def _commit(db: Session, booking_id: str):
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Cancellation of booking %s rolled back", booking_id)
        raise PersistenceFailure("Failed to record cancellation") from exc


def check_eligibility(db: Session, booking_id: str, now: datetime | None = None,
                      parent_id: str | None = None) -> CancellationVerdict:
    now = as_utc(now or datetime.now(timezone.utc))
    booking = _load_booking(db, booking_id, parent_id=parent_id)
    activity = db.get(Activity, booking.activity_id)
    return determine_eligibility(
        snapshot_for(booking, activity),
        now,
        admin_fee=settings.CANCELLATION_ADMIN_FEE,
        notice_hours=settings.CANCELLATION_NOTICE_HOURS,
    )


def process_cancellation(
    db: Session,
    booking_id: str,
    parent_id: str,
    reason: str,
    now: datetime | None = None,
    admin_id: str | None = None,
    notify: bool = True,
) -> CancellationOutcome:
    now = as_utc(now or datetime.now(timezone.utc))
    try:
        booking = _load_booking(db, booking_id, parent_id=parent_id, lock=True)
        activity = db.get(Activity, booking.activity_id)
        verdict = determine_eligibility(
            snapshot_for(booking, activity),
            now,
            admin_fee=settings.CANCELLATION_ADMIN_FEE,
            notice_hours=settings.CANCELLATION_NOTICE_HOURS,
        )
        if not verdict.eligible:
            raise IneligibleCancellationError(verdict.reason)

        _mark_cancelled(db, booking, f"Cancelled: {reason}", now)
        outcome = CancellationOutcome(
            booking_id=booking_id,
            refund_amount=verdict.refund_amount,
            credit_amount=verdict.credit_amount,
            admin_fee=verdict.admin_fee,
            verdict=verdict,
        )

        if verdict.refund_amount > 0:
            refund = RefundTransaction(
                id=str(uuid.uuid4()),
                booking_id=booking_id,
                amount=verdict.refund_amount,
                method="card",
                fee=verdict.admin_fee,
                reason="cancellation",
                status="pending",
                admin_id=admin_id,
                audit_trail_json=json.dumps({
                    "requestedBy": parent_id,
                    "requestedAt": now.isoformat(),
                    "reason": reason,
                    "method": verdict.method.value,
                    "calculation": verdict.breakdown.as_dict(),
                }),
            )
            db.add(refund)
            outcome.refund_transaction_id = refund.id

        if verdict.credit_amount > 0:
            credit = build_credit(
                parent_id,
                verdict.credit_amount,
                "cancellation",
                now,
                provider_id=activity.venue_id if activity else None,
                booking_id=booking_id,
                description=f"Credit from cancellation of booking {booking_id}",
                expiry_days=settings.WALLET_CREDIT_EXPIRY_DAYS,
            )
            db.add(credit)
            outcome.credit_id = credit.id

        log_audit(db, admin_id or parent_id, "booking.cancel", "booking", booking_id, {
            "reason": reason,
            "method": verdict.method.value,
            "refund": str(verdict.refund_amount),
            "credit": str(verdict.credit_amount),
            "fee": str(verdict.admin_fee),
            "refundTransactionId": outcome.refund_transaction_id,
            "creditId": outcome.credit_id,
        })
        _commit(db, booking_id)
    except BookOnError as exc:
        db.rollback()
        if isinstance(exc, IneligibleCancellationError):
            logger.warning("Cancellation of booking %s refused: %s", booking_id, exc.message)
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Cancellation of booking %s failed", booking_id)
        raise PersistenceFailure("Failed to record cancellation") from exc

    logger.info(
        "Cancellation processed for booking %s: refund=%s credit=%s fee=%s refund_tx=%s credit=%s",
        booking_id, outcome.refund_amount, outcome.credit_amount, outcome.admin_fee,
        outcome.refund_transaction_id, outcome.credit_id,
    )
    if notify:
        _notify_parent(db, parent_id, booking_id, outcome, reason)
    return outcome


def process_provider_cancellation(
    db: Session,
    booking_id: str,
    admin_id: str,
    reason: str,
    refund_method: str = "parent_choice",
    now: datetime | None = None,
    notify: bool = True,
) -> CancellationOutcome:
    """Provider-initiated cancellation: no notice window, no admin fee, full amount back.

    ``parent_choice`` writes both a refund transaction and a wallet credit for
    the full amount; the parent is expected to keep one and the other is
    reversed by staff.
    """
    if refund_method not in PROVIDER_REFUND_METHODS:
        raise ValueError(f"refund_method must be one of {PROVIDER_REFUND_METHODS}")
    now = as_utc(now or datetime.now(timezone.utc))
    try:
        booking = _load_booking(db, booking_id, lock=True)
        activity = db.get(Activity, booking.activity_id)
        total = money(booking.amount)
        parent_id = booking.parent_id

        _mark_cancelled(db, booking, f"Provider cancelled: {reason}", now)
        outcome = CancellationOutcome(booking_id=booking_id, refund_amount=ZERO, credit_amount=ZERO, admin_fee=ZERO)

        if refund_method in ("cash", "parent_choice"):
            refund = RefundTransaction(
                id=str(uuid.uuid4()),
                booking_id=booking_id,
                amount=total,
                method="card",
                fee=ZERO,
                reason="provider_cancelled",
                status="pending",
                admin_id=admin_id,
                audit_trail_json=json.dumps({
                    "cancelledBy": admin_id,
                    "cancelledAt": now.isoformat(),
                    "reason": reason,
                    "refundMethod": refund_method,
                    "fullRefund": True,
                }),
            )
            db.add(refund)
            outcome.refund_transaction_id = refund.id
            outcome.refund_amount = total

        if refund_method in ("credit", "parent_choice"):
            credit = build_credit(
                parent_id,
                total,
                "provider_cancellation",
                now,
                provider_id=activity.venue_id if activity else None,
                booking_id=booking_id,
                description=f"Full credit from provider cancellation of booking {booking_id}",
                expiry_days=settings.WALLET_CREDIT_EXPIRY_DAYS,
            )
            db.add(credit)
            outcome.credit_id = credit.id
            outcome.credit_amount = total

        log_audit(db, admin_id, "booking.provider_cancel", "booking", booking_id, {
            "reason": reason,
            "refundMethod": refund_method,
            "refund": str(outcome.refund_amount),
            "credit": str(outcome.credit_amount),
            "refundTransactionId": outcome.refund_transaction_id,
            "creditId": outcome.credit_id,
        })
        _commit(db, booking_id)
    except BookOnError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Provider cancellation of booking %s failed", booking_id)
        raise PersistenceFailure("Failed to record cancellation") from exc

    logger.info(
        "Provider cancellation processed for booking %s by %s: method=%s refund=%s credit=%s",
        booking_id, admin_id, refund_method, outcome.refund_amount, outcome.credit_amount,
    )
    if notify:
        _notify_parent(db, parent_id, booking_id, outcome, reason)
    return outcome


def _notify_parent(db: Session, parent_id: str, booking_id: str, outcome: CancellationOutcome, reason: str):
    """Queue the confirmation email. The cancellation is already committed, so a failure here is only logged."""
    try:
        parent = db.get(User, parent_id)
        if parent is None or not parent.email:
            return
        subject, body = cancellation_email(
            booking_id, reason, outcome.refund_amount, outcome.credit_amount, outcome.admin_fee
        )
        queue_email(db, parent.email, subject, body, related_booking_id=booking_id)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not queue cancellation email for booking %s", booking_id)


def refund_to_dict(r: RefundTransaction) -> dict:
    return {
        "id": r.id,
        "bookingId": r.booking_id,
        "amount": money(r.amount),
        "method": r.method,
        "fee": money(r.fee),
        "reason": r.reason,
        "status": r.status,
        "stripeRefundId": r.stripe_refund_id,
        "createdAt": r.created_at.isoformat() if r.created_at else None,
        "processedAt": r.processed_at.isoformat() if r.processed_at else None,
        "auditTrail": json.loads(r.audit_trail_json or "{}"),
    }


def get_cancellation_history(db: Session, booking_id: str) -> list[dict]:
    refunds = (
        db.query(RefundTransaction)
        .filter(RefundTransaction.booking_id == booking_id)
        .order_by(RefundTransaction.created_at.desc())
        .all()
    )
    return [refund_to_dict(r) for r in refunds]


def _refunds_for_venue(db: Session, venue_id: str | None, status: str | None = None):
    q = db.query(RefundTransaction)
    if venue_id:
        q = (
            q.join(Booking, Booking.id == RefundTransaction.booking_id)
            .join(Activity, Activity.id == Booking.activity_id)
            .filter(Activity.venue_id == venue_id)
        )
    if status:
        q = q.filter(RefundTransaction.status == status)
    return q


def get_cancellation_stats(db: Session, venue_id: str | None = None) -> dict:
    refunds = _refunds_for_venue(db, venue_id).all()
    credits_q = db.query(WalletCredit).filter(WalletCredit.source.in_(["cancellation", "provider_cancellation"]))
    if venue_id:
        credits_q = credits_q.filter(WalletCredit.provider_id == venue_id)
    credits = credits_q.all()
    cancelled_q = db.query(Booking).filter(Booking.status == "cancelled")
    if venue_id:
        cancelled_q = cancelled_q.join(Activity, Activity.id == Booking.activity_id).filter(Activity.venue_id == venue_id)

    stats = {
        "totalCancellations": cancelled_q.count(),
        "totalRefunds": sum((money(r.amount) for r in refunds), ZERO),
        "totalCredits": sum((money(c.amount) for c in credits), ZERO),
        "totalFees": sum((money(r.fee) for r in refunds), ZERO),
        "cancellationsByReason": {},
        "cancellationsByMethod": {},
    }
    for r in refunds:
        stats["cancellationsByReason"][r.reason] = stats["cancellationsByReason"].get(r.reason, 0) + 1
        stats["cancellationsByMethod"][r.method] = stats["cancellationsByMethod"].get(r.method, 0) + 1
    if credits:
        stats["cancellationsByMethod"]["credit"] = stats["cancellationsByMethod"].get("credit", 0) + len(credits)
    return stats


def list_pending_refunds(db: Session, venue_id: str | None = None) -> list[dict]:
    refunds = _refunds_for_venue(db, venue_id, status="pending").order_by(RefundTransaction.created_at.desc()).all()
    return [refund_to_dict(r) for r in refunds]


def process_refund(db: Session, refund_id: str, admin_id: str, stripe_refund_id: str | None = None,
                   notes: str | None = None, now: datetime | None = None) -> RefundTransaction:
    now = as_utc(now or datetime.now(timezone.utc))
    refund = db.execute(
        select(RefundTransaction).where(RefundTransaction.id == refund_id).with_for_update()
    ).scalar_one_or_none()
    if refund is None:
        db.rollback()
        raise NotFoundError("Refund transaction not found", code="REFUND_NOT_FOUND")
    if refund.status != "pending":
        db.rollback()
        raise RefundAlreadyProcessedError("Refund has already been processed")

    trail = json.loads(refund.audit_trail_json or "{}")
    trail.update({"processedBy": admin_id, "processedAt": now.isoformat(), "notes": notes})
    refund.status = "processed"
    refund.processed_at = now
    refund.stripe_refund_id = stripe_refund_id
    refund.audit_trail_json = json.dumps(trail)
    log_audit(db, admin_id, "refund.process", "refund_transaction", refund.id,
              {"amount": str(refund.amount), "stripeRefundId": stripe_refund_id})
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Processing refund %s failed", refund_id)
        raise PersistenceFailure("Failed to process refund") from exc
    logger.info("Refund %s processed by %s (%s)", refund_id, admin_id, refund.amount)
    return refund
