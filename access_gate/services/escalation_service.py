"""
Administrator promotion through the escalation secret.

Anyone who completes a normal login or signup verification with
ADMIN_ESCALATION_SECRET as their password is granted the admin role. The
secret comes from the environment only and is compared in constant time.
Every promotion is written to the audit log, logged at WARNING and
published as a security event. With no secret configured the rule never
fires.
"""
import hmac
import os
import logging

from dotenv import load_dotenv
from sqlalchemy.orm import Session

from access_gate.db.transactions import atomic_transaction
from access_gate.models.user_model import Profile, Role, UserRole
from access_gate.pubsub.publisher import publish_security_event
from access_gate.services.audit_service import log_event

load_dotenv()

logger = logging.getLogger(__name__)

ADMIN_ESCALATION_SECRET = os.getenv("ADMIN_ESCALATION_SECRET") or None


def is_escalation_secret(password: str | None) -> bool:
    secret = ADMIN_ESCALATION_SECRET
    if not secret or not password:
        return False
    return hmac.compare_digest(password.encode("utf-8"), secret.encode("utf-8"))


def has_admin_role(db: Session, user_id: str) -> bool:
    return (
        db.query(UserRole)
        .filter(UserRole.user_id == user_id, UserRole.role == Role.ADMIN.value)
        .first()
        is not None
    )


@atomic_transaction
def promote_to_admin(db: Session, user_id: str, ip: str | None = None) -> bool:
    """Grant the admin role; False when the account already holds it."""
    if has_admin_role(db, user_id):
        return False

    db.add(UserRole(user_id=user_id, role=Role.ADMIN.value))
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if profile is not None:
        profile.role = Role.ADMIN.value
    log_event(
        db,
        "admin_promotion",
        user_id=user_id,
        message="User promoted to administrator via escalation secret",
        metadata={"ip": ip, "email": profile.email if profile else None},
    )
    db.flush()
    logger.warning(f"🚨 User {user_id} promoted to administrator via escalation secret (ip={ip})")
    return True


def apply_escalation(db: Session, user_id: str | None, requested: bool, ip: str | None = None) -> bool:
    """Run the promotion rule after a successful verification."""
    if not requested or not user_id:
        return False
    promoted = promote_to_admin(db, user_id, ip=ip)
    if promoted:
        publish_security_event("admin_promotion", {"user_id": user_id, "ip": ip})
    return promoted
