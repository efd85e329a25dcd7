import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bookon.core.errors import InsufficientCreditsError, PersistenceFailure
from bookon.models.wallet_credit import WalletCredit
from bookon.services.audit_service import log_audit
from bookon.services.cancellation_policy import CREDIT_EXPIRY_DAYS, ZERO, as_utc, money

logger = logging.getLogger(__name__)

CREDIT_SOURCES = ("cancellation", "provider_cancellation", "manual", "refund", "policy", "transfer")


@dataclass
class WalletBalance:
    total_credits: Decimal = ZERO
    available_credits: Decimal = ZERO
    used_credits: Decimal = ZERO
    expired_credits: Decimal = ZERO
    credits_by_provider: dict[str, Decimal] = field(default_factory=dict)
    credits: list[WalletCredit] = field(default_factory=list)


def build_credit(
    parent_id: str,
    amount: Decimal,
    source: str,
    now: datetime,
    provider_id: str | None = None,
    booking_id: str | None = None,
    description: str | None = None,
    expiry_days: int = CREDIT_EXPIRY_DAYS,
) -> WalletCredit:
    """Return an unsaved credit; the caller adds it inside its own transaction."""
    if source not in CREDIT_SOURCES:
        raise ValueError(f"unknown credit source {source!r}")
    amount = money(amount)
    if amount < 0:
        raise ValueError("credit amount must be >= 0")
    return WalletCredit(
        id=str(uuid.uuid4()),
        parent_id=parent_id,
        provider_id=provider_id,
        booking_id=booking_id,
        amount=amount,
        used_amount=ZERO,
        expiry_date=as_utc(now) + timedelta(days=expiry_days),
        source=source,
        status="active",
        description=description or f"Credit from {source}",
    )


def _commit(db: Session, what: str):
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to %s", what)
        raise PersistenceFailure(f"Failed to {what}") from exc


def issue_credit(
    db: Session,
    parent_id: str,
    amount: Decimal,
    source: str,
    provider_id: str | None = None,
    booking_id: str | None = None,
    description: str | None = None,
    expiry_days: int = CREDIT_EXPIRY_DAYS,
    actor_user_id: str | None = None,
) -> WalletCredit:
    credit = build_credit(
        parent_id, amount, source, datetime.now(timezone.utc),
        provider_id=provider_id, booking_id=booking_id, description=description, expiry_days=expiry_days,
    )
    db.add(credit)
    log_audit(db, actor_user_id or parent_id, "wallet.issue", "wallet_credit", credit.id,
              {"amount": str(credit.amount), "source": source, "providerId": provider_id})
    _commit(db, "issue credit")
    logger.info("Credit %s issued to parent %s: %s (%s)", credit.id, parent_id, credit.amount, source)
    return credit


def _active_credits(db: Session, parent_id: str, provider_id: str | None = None, lock: bool = False):
    q = db.query(WalletCredit).filter(WalletCredit.parent_id == parent_id, WalletCredit.status == "active")
    if provider_id:
        q = q.filter(WalletCredit.provider_id == provider_id)
    q = q.order_by(WalletCredit.expiry_date.asc(), WalletCredit.created_at.asc())
    if lock:
        q = q.with_for_update()
    return q.all()


def get_wallet_balance(db: Session, parent_id: str, provider_id: str | None = None, now: datetime | None = None) -> WalletBalance:
    now = as_utc(now or datetime.now(timezone.utc))
    credits = _active_credits(db, parent_id, provider_id)

    balance = WalletBalance()
    for c in credits:
        balance.total_credits += money(c.amount)
        balance.used_credits += money(c.used_amount)
        if as_utc(c.expiry_date) > now:
            balance.available_credits += c.remaining
            provider = c.provider_id or "general"
            balance.credits_by_provider[provider] = balance.credits_by_provider.get(provider, ZERO) + c.remaining
            balance.credits.append(c)
        else:
            balance.expired_credits += c.remaining
    return balance


def _spend(db: Session, parent_id: str, amount: Decimal, transaction_id: str, now: datetime,
           provider_id: str | None = None, booking_id: str | None = None) -> list[dict]:
    """Draw `amount` from the soonest-expiring credits. Does not commit."""
    credits = [c for c in _active_credits(db, parent_id, provider_id, lock=True) if as_utc(c.expiry_date) > now]
    available = sum((c.remaining for c in credits), ZERO)
    if available < amount:
        raise InsufficientCreditsError(f"Insufficient credits available: {available} < {amount}")

    usage = []
    outstanding = amount
    for c in credits:
        if outstanding <= 0:
            break
        take = min(c.remaining, outstanding)
        if take <= 0:
            continue
        c.used_amount = money(c.used_amount) + take
        c.used_at = now
        c.transaction_id = transaction_id
        if c.remaining == 0:
            c.status = "used"
        usage.append({"creditId": c.id, "amount": take, "bookingId": booking_id, "transactionId": transaction_id})
        outstanding -= take
    return usage


def use_credits(db: Session, parent_id: str, amount: Decimal, booking_id: str, transaction_id: str,
                now: datetime | None = None) -> list[dict]:
    now = as_utc(now or datetime.now(timezone.utc))
    amount = money(amount)
    if amount <= 0:
        raise ValueError("amount must be > 0")
    try:
        usage = _spend(db, parent_id, amount, transaction_id, now, booking_id=booking_id)
    except InsufficientCreditsError:
        db.rollback()
        raise
    log_audit(db, parent_id, "wallet.use", "booking", booking_id,
              {"amount": str(amount), "transactionId": transaction_id, "credits": [u["creditId"] for u in usage]})
    _commit(db, "use credits")
    logger.info("Parent %s used %s credit across %d credits for booking %s", parent_id, amount, len(usage), booking_id)
    return usage


def transfer_credits(db: Session, parent_id: str, from_provider_id: str, to_provider_id: str, amount: Decimal,
                     now: datetime | None = None) -> tuple[list[dict], WalletCredit]:
    """Move credit between providers in one transaction; the new credit gets a fresh expiry."""
    now = as_utc(now or datetime.now(timezone.utc))
    amount = money(amount)
    if amount <= 0:
        raise ValueError("amount must be > 0")
    transaction_id = f"transfer-{uuid.uuid4()}"
    try:
        usage = _spend(db, parent_id, amount, transaction_id, now, provider_id=from_provider_id)
    except InsufficientCreditsError:
        db.rollback()
        raise
    credit = build_credit(parent_id, amount, "transfer", now, provider_id=to_provider_id,
                          description=f"Transfer from {from_provider_id}")
    credit.transaction_id = transaction_id
    db.add(credit)
    log_audit(db, parent_id, "wallet.transfer", "wallet_credit", credit.id,
              {"amount": str(amount), "from": from_provider_id, "to": to_provider_id})
    _commit(db, "transfer credits")
    logger.info("Parent %s moved %s credit from %s to %s", parent_id, amount, from_provider_id, to_provider_id)
    return usage, credit


def get_expiring_credits(db: Session, days_ahead: int = 30, now: datetime | None = None) -> list[WalletCredit]:
    now = as_utc(now or datetime.now(timezone.utc))
    return (
        db.query(WalletCredit)
        .filter(
            WalletCredit.status == "active",
            WalletCredit.expiry_date >= now,
            WalletCredit.expiry_date <= now + timedelta(days=days_ahead),
            WalletCredit.used_amount < WalletCredit.amount,
        )
        .order_by(WalletCredit.expiry_date.asc())
        .all()
    )


def process_expired_credits(db: Session, now: datetime | None = None) -> int:
    now = as_utc(now or datetime.now(timezone.utc))
    result = db.execute(
        update(WalletCredit)
        .where(WalletCredit.status == "active", WalletCredit.expiry_date < now)
        .values(status="expired", updated_at=now)
        .execution_options(synchronize_session=False)
    )
    _commit(db, "expire credits")
    if result.rowcount:
        logger.info("Expired %d wallet credits", result.rowcount)
    return result.rowcount


def get_credit_history(db: Session, parent_id: str, limit: int = 50) -> list[WalletCredit]:
    return (
        db.query(WalletCredit)
        .filter(WalletCredit.parent_id == parent_id)
        .order_by(WalletCredit.created_at.desc())
        .limit(limit)
        .all()
    )


def get_wallet_stats(db: Session, provider_id: str | None = None, now: datetime | None = None) -> dict:
    now = as_utc(now or datetime.now(timezone.utc))
    q = db.query(WalletCredit)
    if provider_id:
        q = q.filter(WalletCredit.provider_id == provider_id)

    stats = {
        "totalCreditsIssued": ZERO,
        "totalCreditsUsed": ZERO,
        "totalCreditsExpired": ZERO,
        "activeCredits": ZERO,
        "creditsBySource": {},
        "creditsByProvider": {},
    }
    for c in q.all():
        amount = money(c.amount)
        stats["totalCreditsIssued"] += amount
        stats["totalCreditsUsed"] += money(c.used_amount)
        stats["creditsBySource"][c.source] = stats["creditsBySource"].get(c.source, ZERO) + amount
        provider = c.provider_id or "general"
        stats["creditsByProvider"][provider] = stats["creditsByProvider"].get(provider, ZERO) + amount
        if c.status == "active" and as_utc(c.expiry_date) > now:
            stats["activeCredits"] += c.remaining
        elif c.status == "expired" or as_utc(c.expiry_date) <= now:
            stats["totalCreditsExpired"] += c.remaining
    return stats
