"""
Ban registry: banned IPs, banned emails and deactivated accounts.

The three lists are independent. Checks run IP, then email, then account,
and stop at the first hit.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from access_gate.models.ban import BannedIP, BannedEmail
from access_gate.models.user_model import Profile
from access_gate.pubsub.publisher import publish_security_event
from access_gate.services.audit_service import log_event
from access_gate.services.auth_service import revoke_all_sessions

logger = logging.getLogger(__name__)

IP_BANNED = "ip_banned"
EMAIL_BANNED = "email_banned"
ACCOUNT_DEACTIVATED = "account_deactivated"

BLOCK_MESSAGES = {
    IP_BANNED: "Your IP address has been banned.",
    EMAIL_BANNED: "This account has been banned.",
    ACCOUNT_DEACTIVATED: "Your account has been deactivated.",
}

# Hits that concern an account rather than a network origin
ACCOUNT_LEVEL_REASONS = {EMAIL_BANNED, ACCOUNT_DEACTIVATED}


@dataclass(frozen=True)
class BlockResult:
    blocked: bool
    reason: str | None = None

    @property
    def message(self) -> str | None:
        return BLOCK_MESSAGES.get(self.reason)

    def as_detail(self) -> dict:
        return {"reason": self.reason, "message": self.message}


NOT_BLOCKED = BlockResult(blocked=False)


def is_ip_banned(db: Session, ip: str | None) -> bool:
    if not ip:
        return False
    return db.query(BannedIP).filter(BannedIP.ip_address == ip).first() is not None


def is_email_banned(db: Session, email: str | None) -> bool:
    if not email:
        return False
    return db.query(BannedEmail).filter(BannedEmail.email == email).first() is not None


def is_account_deactivated(db: Session, account_id: str | None) -> bool:
    if not account_id:
        return False
    profile = db.query(Profile).filter(Profile.id == account_id).first()
    return profile is not None and not profile.active


def check_blocked(db: Session, ip: str | None, email: str | None, account_id: str | None) -> BlockResult:
    """Return the first matching ban; a None input skips its check."""
    if is_ip_banned(db, ip):
        logger.warning(f"⚠️  Blocked attempt from banned IP {ip}")
        return BlockResult(True, IP_BANNED)
    if is_email_banned(db, email):
        logger.warning(f"⚠️  Blocked attempt for banned email {email}")
        return BlockResult(True, EMAIL_BANNED)
    if is_account_deactivated(db, account_id):
        logger.warning(f"⚠️  Blocked attempt for deactivated account {account_id}")
        return BlockResult(True, ACCOUNT_DEACTIVATED)
    return NOT_BLOCKED


def enforce_block(db: Session, result: BlockResult, account_id: str | None, ip: str | None = None) -> int:
    """Sign the account out everywhere when the hit is account-level.

    Commits. Returns the number of sessions revoked.
    """
    if not result.blocked or result.reason not in ACCOUNT_LEVEL_REASONS or not account_id:
        return 0
    revoked = revoke_all_sessions(db, account_id, reason=result.reason)
    log_event(
        db,
        "forced_sign_out",
        user_id=account_id,
        message=BLOCK_MESSAGES[result.reason],
        metadata={"reason": result.reason, "ip": ip, "sessions_revoked": revoked},
    )
    db.commit()
    publish_security_event("forced_sign_out", {"user_id": account_id, "reason": result.reason, "ip": ip})
    return revoked
