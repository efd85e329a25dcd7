"""Cancellation and refund eligibility rules.

Pure functions over booking snapshots. Nothing here touches the database or
reads settings; callers pass the fee and notice window in.

Rules, first match wins:

1. Booking already cancelled or completed: not eligible.
2. Session already started: not eligible, nothing refunded.
3. Mixed payment inside the notice window: everything unused becomes credit.
4. Mixed payment outside the window: 50/50 split into cash and credit, the
   admin fee taken from each half.
5. Inside the notice window: credit only.
6. Card outside the window: cash refund.
7. TFC, voucher or wallet credit outside the window: credit only, these
   rails cannot be paid back in cash.

Outside the mixed branch the fee is taken once and never exceeds the amount
it is taken from, so ``refund + credit + fee == refundable_amount``.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP

ADMIN_FEE = Decimal("2.00")
NOTICE_HOURS = 24
CREDIT_EXPIRY_DAYS = 365

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    TFC = "tfc"
    VOUCHER = "voucher"
    MIXED = "mixed"
    CREDIT = "credit"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class RefundMethod(str, enum.Enum):
    CASH = "cash"
    CREDIT = "credit"
    MIXED = "mixed"


CANCELLABLE_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)


def money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def as_utc(dt: datetime) -> datetime:
    """Naive datetimes (e.g. read back from SQLite) are taken to be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _micros(delta: timedelta) -> int:
    return (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds


@dataclass(frozen=True)
class CourseSchedule:
    start: datetime
    end: datetime
    total_sessions: int

    def __post_init__(self):
        object.__setattr__(self, "start", as_utc(self.start))
        object.__setattr__(self, "end", as_utc(self.end))


@dataclass(frozen=True)
class BookingSnapshot:
    booking_id: str
    amount: Decimal
    payment_method: PaymentMethod
    activity_at: datetime
    status: BookingStatus = BookingStatus.CONFIRMED
    course: CourseSchedule | None = None

    def __post_init__(self):
        amount = money(self.amount)
        if amount < 0:
            raise ValueError("booking amount must be >= 0")
        object.__setattr__(self, "amount", amount)
        object.__setattr__(self, "payment_method", PaymentMethod(self.payment_method))
        object.__setattr__(self, "status", BookingStatus(self.status))
        object.__setattr__(self, "activity_at", as_utc(self.activity_at))
        # A course without sessions is priced as a single session.
        if self.course is not None and self.course.total_sessions < 1:
            object.__setattr__(self, "course", None)


@dataclass(frozen=True)
class ProRataBreakdown:
    total_paid: Decimal
    sessions_used: int
    sessions_remaining: int
    value_per_session: Decimal
    refundable_amount: Decimal
    credit_amount: Decimal
    admin_fee: Decimal

    def as_dict(self) -> dict:
        return {
            "totalPaid": str(self.total_paid),
            "sessionsUsed": self.sessions_used,
            "sessionsRemaining": self.sessions_remaining,
            "valuePerSession": str(self.value_per_session),
            "refundableAmount": str(self.refundable_amount),
            "creditAmount": str(self.credit_amount),
            "adminFee": str(self.admin_fee),
        }


@dataclass(frozen=True)
class CancellationVerdict:
    eligible: bool
    refund_amount: Decimal
    credit_amount: Decimal
    admin_fee: Decimal
    method: RefundMethod
    reason: str
    breakdown: ProRataBreakdown
    hours_until_session: float = field(default=0.0)


def sessions_used(snapshot: BookingSnapshot, now: datetime) -> int:
    now = as_utc(now)
    course = snapshot.course
    if course is None:
        return 1 if now >= snapshot.activity_at else 0
    if now < course.start:
        return 0
    if now >= course.end:
        return course.total_sessions
    elapsed = _micros(now - course.start)
    duration = _micros(course.end - course.start)
    return course.total_sessions * elapsed // duration


def next_session_at(snapshot: BookingSnapshot, now: datetime) -> datetime:
    """Start of the first session at or after ``now``.

    For a course this is the next session boundary, or the course end once
    the last session is under way.
    """
    now = as_utc(now)
    course = snapshot.course
    if course is None:
        return snapshot.activity_at
    if now <= course.start:
        return course.start
    if now >= course.end:
        return course.end
    total = course.total_sessions
    elapsed = _micros(now - course.start)
    duration = _micros(course.end - course.start)
    index = min(-(-total * elapsed // duration), total)
    return course.start + timedelta(microseconds=duration * index // total)


def hours_until_session(snapshot: BookingSnapshot, now: datetime) -> float:
    now = as_utc(now)
    if snapshot.course is not None and now > snapshot.course.end:
        return (snapshot.course.end - now).total_seconds() / 3600
    return (next_session_at(snapshot, now) - now).total_seconds() / 3600


def calculate_pro_rata(snapshot: BookingSnapshot, now: datetime, admin_fee: Decimal = ADMIN_FEE) -> ProRataBreakdown:
    total_paid = snapshot.amount
    total_sessions = snapshot.course.total_sessions if snapshot.course else 1
    used = sessions_used(snapshot, now)
    remaining = total_sessions - used

    refundable = money(total_paid * remaining / total_sessions)
    fee = min(money(admin_fee), refundable)

    return ProRataBreakdown(
        total_paid=total_paid,
        sessions_used=used,
        sessions_remaining=remaining,
        value_per_session=money(total_paid / total_sessions),
        refundable_amount=refundable,
        credit_amount=refundable - fee,
        admin_fee=fee,
    )


def _ineligible(breakdown: ProRataBreakdown, reason: str, hours: float) -> CancellationVerdict:
    return CancellationVerdict(
        eligible=False,
        refund_amount=ZERO,
        credit_amount=ZERO,
        admin_fee=ZERO,
        method=RefundMethod.CREDIT,
        reason=reason,
        breakdown=breakdown,
        hours_until_session=hours,
    )


def _credit_only(breakdown: ProRataBreakdown, reason: str, hours: float) -> CancellationVerdict:
    return CancellationVerdict(
        eligible=True,
        refund_amount=ZERO,
        credit_amount=breakdown.credit_amount,
        admin_fee=breakdown.admin_fee,
        method=RefundMethod.CREDIT,
        reason=reason,
        breakdown=breakdown,
        hours_until_session=hours,
    )


def _split_mixed(breakdown: ProRataBreakdown, admin_fee: Decimal, hours: float) -> CancellationVerdict:
    # No record of the original card/voucher split exists, so assume half each.
    card_half = money(breakdown.refundable_amount / 2)
    voucher_half = breakdown.refundable_amount - card_half
    card_fee = min(money(admin_fee), card_half)
    voucher_fee = min(money(admin_fee), voucher_half)
    return CancellationVerdict(
        eligible=True,
        refund_amount=card_half - card_fee,
        credit_amount=voucher_half - voucher_fee,
        admin_fee=card_fee + voucher_fee,
        method=RefundMethod.MIXED,
        reason="Mixed payment - card portion refunded, voucher portion returned as credit",
        breakdown=breakdown,
        hours_until_session=hours,
    )


def determine_eligibility(
    snapshot: BookingSnapshot,
    now: datetime,
    admin_fee: Decimal = ADMIN_FEE,
    notice_hours: int = NOTICE_HOURS,
) -> CancellationVerdict:
    now = as_utc(now)
    hours = hours_until_session(snapshot, now)
    breakdown = calculate_pro_rata(snapshot, now, admin_fee)

    if snapshot.status not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
        return _ineligible(breakdown, f"Booking is already {snapshot.status.value}", hours)

    if hours < 0:
        return _ineligible(breakdown, "Session has already occurred - no refund available", hours)

    within_notice = hours < notice_hours
    method = snapshot.payment_method

    if method is PaymentMethod.MIXED:
        if within_notice:
            return _credit_only(breakdown, f"Within {notice_hours} hours of the session - credit only", hours)
        return _split_mixed(breakdown, admin_fee, hours)

    if within_notice:
        if method is PaymentMethod.CARD:
            return _credit_only(breakdown, f"Within {notice_hours} hours of the session - credit only", hours)
        return _credit_only(breakdown, f"Within {notice_hours} hours of the session - credit for unused sessions", hours)

    if method is PaymentMethod.CARD:
        return CancellationVerdict(
            eligible=True,
            refund_amount=breakdown.credit_amount,
            credit_amount=ZERO,
            admin_fee=breakdown.admin_fee,
            method=RefundMethod.CASH,
            reason="Cancellation eligible for refund",
            breakdown=breakdown,
            hours_until_session=hours,
        )

    return _credit_only(breakdown, "Cancellation eligible for credit - this payment method cannot be refunded in cash", hours)
