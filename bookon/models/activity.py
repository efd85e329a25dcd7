from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from bookon.db.session import Base

class Activity(Base):
    __tablename__ = "activities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    venue_id: Mapped[str] = mapped_column(String(36), index=True)
    name: Mapped[str] = mapped_column(String(200), default="")

    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    # Courses: several sessions sold as one booking. Null for single sessions.
    course_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    course_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_sessions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    session_duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def is_course(self) -> bool:
        return bool(self.total_sessions) and self.course_start is not None and self.course_end is not None
