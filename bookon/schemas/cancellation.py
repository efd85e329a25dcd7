from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

from bookon.services.cancellation_policy import CancellationVerdict, ProRataBreakdown


class CancellationRequestIn(BaseModel):
    bookingId: str = Field(min_length=1, max_length=36)
    reason: str = Field(min_length=1, max_length=500)


class ProviderCancellationIn(BaseModel):
    reason: str = Field(min_length=1, max_length=500)
    refundMethod: Literal["cash", "credit", "parent_choice"] = "parent_choice"


class ProcessRefundIn(BaseModel):
    stripeRefundId: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class BreakdownOut(BaseModel):
    totalPaid: Decimal
    sessionsUsed: int
    sessionsRemaining: int
    valuePerSession: Decimal
    refundableAmount: Decimal
    creditAmount: Decimal
    adminFee: Decimal

    @classmethod
    def from_breakdown(cls, b: ProRataBreakdown) -> "BreakdownOut":
        return cls(
            totalPaid=b.total_paid,
            sessionsUsed=b.sessions_used,
            sessionsRemaining=b.sessions_remaining,
            valuePerSession=b.value_per_session,
            refundableAmount=b.refundable_amount,
            creditAmount=b.credit_amount,
            adminFee=b.admin_fee,
        )


class EligibilityOut(BaseModel):
    eligible: bool
    refundAmount: Decimal
    creditAmount: Decimal
    adminFee: Decimal
    method: Literal["cash", "credit", "mixed"]
    reason: str
    hoursUntilSession: float
    breakdown: BreakdownOut

    @classmethod
    def from_verdict(cls, v: CancellationVerdict) -> "EligibilityOut":
        return cls(
            eligible=v.eligible,
            refundAmount=v.refund_amount,
            creditAmount=v.credit_amount,
            adminFee=v.admin_fee,
            method=v.method.value,
            reason=v.reason,
            hoursUntilSession=round(v.hours_until_session, 2),
            breakdown=BreakdownOut.from_breakdown(v.breakdown),
        )


class CancellationResultOut(BaseModel):
    bookingId: str
    refundAmount: Decimal
    creditAmount: Decimal
    adminFee: Decimal
    refundTransactionId: Optional[str] = None
    creditId: Optional[str] = None


class RefundOut(BaseModel):
    id: str
    bookingId: str
    amount: Decimal
    method: str
    fee: Decimal
    reason: str
    status: str
    stripeRefundId: Optional[str] = None
    createdAt: Optional[str] = None
    processedAt: Optional[str] = None
    auditTrail: dict = {}


class CancellationStatsOut(BaseModel):
    totalCancellations: int
    totalRefunds: Decimal
    totalCredits: Decimal
    totalFees: Decimal
    cancellationsByReason: dict[str, int]
    cancellationsByMethod: dict[str, int]
