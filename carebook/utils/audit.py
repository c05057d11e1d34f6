"""
Audit logging for visit and appointment changes.

Runs after the core transaction committed; a failure here is logged and
never undoes the operation it describes.
"""
import json
import logging
from typing import Optional

from carebook.extensions import db
from carebook.models import AuditLog
from carebook.services.visibility import Actor

logger = logging.getLogger(__name__)


def log_audit(
    entity_type: str,
    action: str,
    actor: Optional[Actor] = None,
    entity_id: Optional[str] = None,
    details: Optional[dict] = None,
) -> None:
    """
    Append an audit log entry.

    Args:
        entity_type: 'visit' or 'appointment'
        action: create, update, reschedule, complete, cancel, delete
        actor: Caller that made the change; id and role are both recorded
        entity_id: Affected row
        details: JSON-serializable context (dates are stored as strings)
    """
    try:
        entry = AuditLog(
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            action=action,
            actor_id=actor.id if actor else None,
            actor_role=actor.role if actor else None,
            details=json.dumps(details, default=str) if details else None,
        )
        db.session.add(entry)
        db.session.commit()
    except Exception as e:
        logger.warning("Audit log failed for %s %s %s: %s", entity_type, action, entity_id, e)
        db.session.rollback()
