import ipaddress
import logging

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from access_gate.db.transactions import TransactionContext
from access_gate.models.ban import BannedIP, BannedEmail
from access_gate.models.user_model import Profile
from access_gate.schemas.auth_scheme import ProfileRead
from access_gate.services.audit_service import log_event
from access_gate.services.auth_service import get_profile_by_email
from access_gate.services.ban_service import (
    ACCOUNT_DEACTIVATED,
    EMAIL_BANNED,
    BlockResult,
    enforce_block,
)

logger = logging.getLogger(__name__)


def list_profiles(db: Session) -> list[ProfileRead]:
    profiles = db.query(Profile).order_by(Profile.created_at.desc()).all()
    return [ProfileRead.model_validate(p) for p in profiles]


def ban_ip(db: Session, admin: Profile, ip_address: str, reason: str | None) -> dict:
    try:
        ip_address = str(ipaddress.ip_address(ip_address.strip()))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid IP address")

    with TransactionContext(db) as tx:
        if tx.session.query(BannedIP).filter_by(ip_address=ip_address).first():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="IP address already banned")
        tx.session.add(BannedIP(ip_address=ip_address, reason=reason))
        log_event(tx.session, "ban_added", user_id=admin.id, message=reason,
                  metadata={"type": "ip", "value": ip_address})

    logger.info(f"✅ IP banned: {ip_address} (Reason: {reason})")
    return {"status": "success", "ip_address": ip_address}


def unban_ip(db: Session, admin: Profile, ip_address: str) -> dict:
    with TransactionContext(db) as tx:
        ban = tx.session.query(BannedIP).filter_by(ip_address=ip_address).first()
        if not ban:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="IP address not banned")
        tx.session.delete(ban)
        log_event(tx.session, "ban_removed", user_id=admin.id, metadata={"type": "ip", "value": ip_address})
    return {"status": "success", "ip_address": ip_address}


def ban_email(db: Session, admin: Profile, email: str, reason: str | None) -> dict:
    with TransactionContext(db) as tx:
        if tx.session.query(BannedEmail).filter_by(email=email).first():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already banned")
        tx.session.add(BannedEmail(email=email, reason=reason))
        log_event(tx.session, "ban_added", user_id=admin.id, message=reason,
                  metadata={"type": "email", "value": email})

    signed_out = 0
    account = get_profile_by_email(db, email)
    if account is not None:
        signed_out = enforce_block(db, BlockResult(True, EMAIL_BANNED), account.id)
    logger.info(f"✅ Email banned: {email} (Reason: {reason})")
    return {"status": "success", "email": email, "sessions_revoked": signed_out}


def unban_email(db: Session, admin: Profile, email: str) -> dict:
    with TransactionContext(db) as tx:
        ban = tx.session.query(BannedEmail).filter_by(email=email).first()
        if not ban:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Email not banned")
        tx.session.delete(ban)
        log_event(tx.session, "ban_removed", user_id=admin.id, metadata={"type": "email", "value": email})
    return {"status": "success", "email": email}


def set_account_active(db: Session, admin: Profile, user_id: str, active: bool) -> dict:
    with TransactionContext(db) as tx:
        user = tx.session.query(Profile).filter(Profile.id == user_id).first()
        if not user:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        user.active = active
        log_event(tx.session, "account_status_changed", user_id=user_id,
                  metadata={"active": active, "changed_by": admin.id})

    signed_out = 0
    if not active:
        signed_out = enforce_block(db, BlockResult(True, ACCOUNT_DEACTIVATED), user_id)
    return {"status": "success", "user_id": user_id, "active": active, "sessions_revoked": signed_out}
