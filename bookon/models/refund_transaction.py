from decimal import Decimal
from sqlalchemy import String, Numeric, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from bookon.db.session import Base

class RefundTransaction(Base):
    __tablename__ = "refund_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(36), index=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    method: Mapped[str] = mapped_column(String(20), default="card")
    fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    reason: Mapped[str] = mapped_column(String(30), index=True)  # cancellation, provider_cancelled
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)  # pending, processed

    admin_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    stripe_refund_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    audit_trail_json: Mapped[str] = mapped_column(Text, default="{}")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
