import logging

from sqlalchemy.exc import ProgrammingError
from sqlalchemy.orm import Session

from bookon.db.session import SessionLocal
from bookon.services.email_service import process_pending_emails
from bookon.services.wallet_service import process_expired_credits

logger = logging.getLogger(__name__)


def expire_wallet_credits(session_factory=SessionLocal) -> dict:
    db: Session = session_factory()
    try:
        try:
            count = process_expired_credits(db)
        except ProgrammingError:
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
        return {"expired": count}
    finally:
        db.close()


def process_email_queue(limit: int = 50, session_factory=SessionLocal) -> dict:
    db: Session = session_factory()
    try:
        try:
            result = process_pending_emails(db, limit=limit)
        except ProgrammingError:
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
        if result["processed"]:
            logger.info("Email queue: %s", result)
        return result
    finally:
        db.close()
