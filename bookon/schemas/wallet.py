from decimal import Decimal
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, Field

from bookon.models.wallet_credit import WalletCredit

Money = Annotated[Decimal, Field(gt=0, max_digits=10, decimal_places=2)]


class CreditOut(BaseModel):
    id: str
    providerId: Optional[str] = None
    bookingId: Optional[str] = None
    amount: Decimal
    usedAmount: Decimal
    remaining: Decimal
    expiryDate: str
    source: str
    status: str
    description: str = ""
    createdAt: Optional[str] = None

    @classmethod
    def from_model(cls, c: WalletCredit) -> "CreditOut":
        return cls(
            id=c.id,
            providerId=c.provider_id,
            bookingId=c.booking_id,
            amount=c.amount,
            usedAmount=c.used_amount,
            remaining=c.remaining,
            expiryDate=c.expiry_date.isoformat(),
            source=c.source,
            status=c.status,
            description=c.description or "",
            createdAt=c.created_at.isoformat() if c.created_at else None,
        )


class WalletBalanceOut(BaseModel):
    totalCredits: Decimal
    availableCredits: Decimal
    usedCredits: Decimal
    expiredCredits: Decimal
    creditsByProvider: dict[str, Decimal]
    credits: list[CreditOut]


class UseCreditsIn(BaseModel):
    amount: Money
    bookingId: str
    transactionId: str


class CreditUsageOut(BaseModel):
    creditId: str
    amount: Decimal
    bookingId: Optional[str] = None
    transactionId: str


class IssueCreditIn(BaseModel):
    parentId: str
    amount: Money
    source: Literal["manual", "refund", "policy"] = "manual"
    providerId: Optional[str] = None
    bookingId: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=500)
    expiryDays: int = Field(default=365, ge=1, le=3650)


class TransferCreditsIn(BaseModel):
    fromProviderId: str
    toProviderId: str
    amount: Money


class WalletStatsOut(BaseModel):
    totalCreditsIssued: Decimal
    totalCreditsUsed: Decimal
    totalCreditsExpired: Decimal
    activeCredits: Decimal
    creditsBySource: dict[str, Decimal]
    creditsByProvider: dict[str, Decimal]
