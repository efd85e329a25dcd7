import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, ProgrammingError

from bookon.db.session import SessionLocal
from bookon.core.security import hash_password
from bookon.models.user import User
from bookon.models.activity import Activity
from bookon.models.booking import Booking

logger = logging.getLogger(__name__)

DEMO_VENUE_ID = "00000000-0000-0000-0000-00000000a001"


def ensure_user(db: Session, email: str, password: str, role: str, name: str) -> User:
    u = db.query(User).filter(User.email == email).first()
    if u:
        return u
    u = User(
        id=str(uuid.uuid4()),
        email=email,
        full_name=name,
        role=role,
        password_hash=hash_password(password),
        is_active=True,
    )
    db.add(u)
    db.commit()
    return u


def ensure_activity(db: Session, name: str, **fields) -> Activity:
    a = db.query(Activity).filter(Activity.name == name, Activity.venue_id == DEMO_VENUE_ID).first()
    if a:
        return a
    a = Activity(id=str(uuid.uuid4()), venue_id=DEMO_VENUE_ID, name=name, **fields)
    db.add(a)
    db.commit()
    return a


def run(db=None):
    if db is None:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM users LIMIT 1"))
        except (ProgrammingError, OperationalError):
            db.rollback()
            logger.warning("users table not found yet. Skipping seeding (run alembic upgrade head).")
            return

        ensure_user(db, "admin@bookon.local", "admin12345", "admin", "Admin")
        ensure_user(db, "staff@bookon.local", "staff12345", "staff", "Venue Staff")
        parent = ensure_user(db, "parent@bookon.local", "parent12345", "parent", "Demo Parent")

        now = datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0)
        swim = ensure_activity(db, "Saturday Swim Club", start_at=now + timedelta(days=5))
        course_start = now + timedelta(days=7)
        football = ensure_activity(
            db,
            "Holiday Football Course",
            start_at=course_start,
            course_start=course_start,
            course_end=course_start + timedelta(weeks=10),
            total_sessions=10,
            session_duration_minutes=60,
        )

        if not db.query(Booking).filter(Booking.parent_id == parent.id).first():
            child_id = str(uuid.uuid4())
            db.add(Booking(
                id=str(uuid.uuid4()), parent_id=parent.id, child_id=child_id, activity_id=swim.id,
                amount=Decimal("20.00"), payment_method="card", status="confirmed", activity_at=swim.start_at,
            ))
            db.add(Booking(
                id=str(uuid.uuid4()), parent_id=parent.id, child_id=child_id, activity_id=football.id,
                amount=Decimal("100.00"), payment_method="tfc", status="confirmed", activity_at=football.start_at,
            ))
            db.commit()
        logger.info("Seed complete")
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run()
