from decimal import Decimal
from sqlalchemy import String, Numeric, DateTime, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from bookon.db.session import Base

class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (CheckConstraint("amount >= 0", name="ck_bookings_amount_non_negative"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    parent_id: Mapped[str] = mapped_column(String(36), index=True)
    child_id: Mapped[str] = mapped_column(String(36), index=True)
    activity_id: Mapped[str] = mapped_column(String(36), index=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    payment_method: Mapped[str] = mapped_column(String(20), default="card")  # card, tfc, voucher, mixed, credit
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)  # pending, confirmed, cancelled, completed

    activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str] = mapped_column(Text, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
