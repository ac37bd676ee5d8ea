"""Audit trail written to the ``logs`` table."""
import logging
from typing import Any

from sqlalchemy.orm import Session

from access_gate.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def log_event(
    db: Session,
    action_type: str,
    user_id: str | None = None,
    message: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditLog:
    """Add an audit row to the current transaction.

    The caller owns the commit so the audit row lands together with the
    change it describes.
    """
    entry = AuditLog(
        user_id=user_id,
        action_type=action_type,
        message=message,
        details=metadata,
    )
    db.add(entry)
    db.flush()
    logger.info(f"📝 Audit {action_type} for user {user_id}")
    return entry


def count_events(db: Session, action_type: str, user_id: str | None = None) -> int:
    query = db.query(AuditLog).filter(AuditLog.action_type == action_type)
    if user_id is not None:
        query = query.filter(AuditLog.user_id == user_id)
    return query.count()
