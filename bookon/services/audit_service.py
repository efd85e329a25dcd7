import uuid, json
from sqlalchemy.orm import Session
from bookon.models.audit_log import AuditLog

def log_audit(db: Session, actor_user_id: str, action: str, entity_type: str, entity_id: str, details: dict | None = None) -> AuditLog:
    """Stage an audit row in the caller's transaction. The caller commits."""
    entry = AuditLog(
        id=str(uuid.uuid4()),
        actor_user_id=actor_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details_json=json.dumps(details or {}, ensure_ascii=False, default=str),
    )
    db.add(entry)
    return entry
