from decimal import Decimal
from sqlalchemy import String, Numeric, DateTime, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from bookon.db.session import Base

class WalletCredit(Base):
    __tablename__ = "wallet_credits"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_wallet_credits_amount_non_negative"),
        CheckConstraint("used_amount <= amount", name="ck_wallet_credits_used_within_amount"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    parent_id: Mapped[str] = mapped_column(String(36), index=True)
    provider_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    booking_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    used_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    expiry_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    source: Mapped[str] = mapped_column(String(30))  # cancellation, provider_cancellation, manual, refund, policy, transfer
    status: Mapped[str] = mapped_column(String(20), default="active", index=True)  # active, used, expired, cancelled
    description: Mapped[str] = mapped_column(String(500), default="")
    transaction_id: Mapped[str | None] = mapped_column(String(120), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def remaining(self) -> Decimal:
        return Decimal(self.amount) - Decimal(self.used_amount or 0)
