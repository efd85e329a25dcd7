"""Outbound parent notifications.

Emails are written to ``email_logs`` first and delivered afterwards, so a
mail outage never fails the request that triggered them. Rows left
``queued`` or ``failed`` are retried by the ``process_email_queue`` job.
"""
import logging
import smtplib
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from email.message import EmailMessage

import requests
from sqlalchemy.orm import Session

from bookon.core.config import settings
from bookon.models.email_log import EmailLog

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
DELIVERY_ERRORS = (OSError, smtplib.SMTPException, requests.RequestException, RuntimeError)


def cancellation_email(booking_id: str, reason: str, refund: Decimal, credit: Decimal, fee: Decimal) -> tuple[str, str]:
    """Subject and plain-text body confirming a cancellation."""
    lines = [f"Your booking {booking_id} has been cancelled.", f"Reason: {reason}", ""]
    if refund > 0:
        lines.append(f"Refund to your card: £{refund} (usually 5-10 working days)")
    if credit > 0:
        lines.append(f"Wallet credit: £{credit}, valid for {settings.WALLET_CREDIT_EXPIRY_DAYS} days")
    if fee > 0:
        lines.append(f"Admin fee: £{fee}")
    if refund <= 0 and credit <= 0:
        lines.append("No refund or credit is due for this booking.")
    return "BookOn: booking cancelled", "\n".join(lines)


def queue_email(db: Session, to_email: str, subject: str, body: str, related_booking_id: str = "") -> str:
    eid = str(uuid.uuid4())
    log = EmailLog(
        id=eid,
        to_email=to_email,
        subject=subject,
        body=body,
        status="queued",
        related_booking_id=related_booking_id,
    )
    db.add(log)
    db.commit()

    if settings.EMAIL_SEND_IMMEDIATE:
        _deliver(log)
        db.commit()
    return eid


def _deliver(log: EmailLog) -> bool:
    try:
        send_email(log.to_email, log.subject, log.body)
    except DELIVERY_ERRORS:
        logger.warning("Email %s to %s failed, left for retry", log.id, log.to_email, exc_info=True)
        log.status = "failed"
        return False
    log.status = "sent"
    log.sent_at = datetime.now(timezone.utc)
    return True


def send_email(to_email: str, subject: str, body: str):
    """SendGrid when an API key is configured, plain SMTP otherwise (MailHog in dev)."""
    if settings.SENDGRID_API_KEY:
        _send_via_sendgrid(to_email, subject, body)
        return

    msg = EmailMessage()
    msg["From"] = settings.SMTP_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)
    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
        if settings.SMTP_USERNAME:
            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        smtp.send_message(msg)


def _send_via_sendgrid(to_email: str, subject: str, body: str):
    r = requests.post(
        SENDGRID_URL,
        json={
            "personalizations": [{"to": [{"email": to_email}]}],
            "from": {"email": settings.SENDGRID_FROM_EMAIL or settings.SMTP_FROM},
            "subject": subject,
            "content": [{"type": "text/plain", "value": body}],
        },
        headers={"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"},
        timeout=20,
    )
    if r.status_code >= 400:
        raise RuntimeError(f"SendGrid error {r.status_code}: {r.text}")


def process_pending_emails(db: Session, limit: int = 50) -> dict:
    """Retry up to `limit` queued or failed emails, oldest first."""
    pending = (
        db.query(EmailLog)
        .filter(EmailLog.status.in_(["queued", "failed"]), EmailLog.body.isnot(None), EmailLog.body != "")
        .order_by(EmailLog.created_at.asc())
        .limit(limit)
        .all()
    )
    sent = sum(1 for log in pending if _deliver(log))
    if pending:
        db.commit()
    return {"processed": len(pending), "sent": sent, "failed": len(pending) - sent}
