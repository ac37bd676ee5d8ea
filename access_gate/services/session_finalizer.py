import logging

from sqlalchemy.orm import Session

from access_gate.db.transactions import atomic_transaction
from access_gate.models.base import utcnow
from access_gate.models.user_model import Profile
from access_gate.models.verification_code import VerificationFlow
from access_gate.services.audit_service import log_event
from access_gate.services.auth_service import open_session

logger = logging.getLogger(__name__)

LANDING_PATH = "/"

SUCCESS_MESSAGES = {
    VerificationFlow.LOGIN.value: ("Signed in successfully!", "Welcome! You have been promoted to administrator."),
    VerificationFlow.SIGNUP.value: ("Account created successfully!", "Account created! You have been promoted to administrator."),
}

AUDIT_ACTIONS = {
    VerificationFlow.LOGIN.value: "login",
    VerificationFlow.SIGNUP.value: "signup_complete",
}


@atomic_transaction
def finalize_session(db: Session, user: Profile, flow: str, ip: str | None, promoted: bool) -> dict:
    """Open the session for a verified attempt and record the telemetry."""
    access_token = open_session(db, user, ip)

    user.last_login = utcnow()
    user.login_count = (user.login_count or 0) + 1
    if ip:
        user.last_ip = ip

    log_event(
        db,
        AUDIT_ACTIONS[flow],
        user_id=user.id,
        message=f"{flow} verified",
        metadata={"email": user.email, "ip": ip, "flow": flow},
    )
    logger.info(f"✅ Session established for {user.email} ({flow}), login #{user.login_count}")

    plain, promoted_message = SUCCESS_MESSAGES[flow]
    return {
        "status": "success",
        "message": promoted_message if promoted else plain,
        "access_token": access_token,
        "token_type": "bearer",
        "user_id": user.id,
        "promoted_to_admin": promoted,
        "redirect_to": LANDING_PATH,
    }
