import uuid
import logging
from datetime import timedelta

import jwt
from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from access_gate.db.transactions import atomic_transaction
from access_gate.models.base import utcnow, as_utc
from access_gate.models.pending_auth import PendingAuth, PendingState
from access_gate.models.user_model import Profile
from access_gate.models.verification_code import VerificationFlow
from access_gate.services.auth_service import (
    ACCESS_TOKEN_TYPE,
    PENDING_TOKEN_TYPE,
    IdentityError,
    authenticate_user,
    create_account,
    create_token,
    decode_token,
    get_password_hash,
    get_live_session,
    get_profile_by_email,
    revoke_session,
    username_exists,
)
from access_gate.services.ban_service import check_blocked, enforce_block
from access_gate.services.code_service import (
    CODE_TTL_MINUTES,
    DeliveryFailed,
    ResendCooldown,
    cooldown_remaining,
    issue_code,
    validate_code,
)
from access_gate.services.escalation_service import apply_escalation, is_escalation_secret
from access_gate.services.session_finalizer import finalize_session

logger = logging.getLogger(__name__)

INVALID_CODE_MESSAGE = "Invalid or expired code"
PENDING_EXPIRED_MESSAGE = "Your verification session has expired. Please sign in again."


# ==================== HELPERS ====================

def _reject_if_blocked(db: Session, ip: str | None, email: str | None, account_id: str | None = None) -> None:
    result = check_blocked(db, ip, email, account_id)
    if result.blocked:
        enforce_block(db, result, account_id, ip)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=result.as_detail())


async def _send_code(db: Session, pending: PendingAuth) -> None:
    try:
        await issue_code(db, pending.email, pending.flow, user_id=pending.user_id)
    except ResendCooldown as e:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"message": f"Please wait {e.retry_after} seconds before requesting a new code.", "retry_after": e.retry_after},
        )
    except DeliveryFailed:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "delivery_failed", "message": "We could not send the verification email. Please try again."},
        )


@atomic_transaction
def _open_pending(db: Session, pending: PendingAuth) -> PendingAuth:
    pending.id = uuid.uuid4().hex
    pending.state = PendingState.VERIFICATION.value
    pending.created_at = utcnow()
    pending.expires_at = pending.created_at + timedelta(minutes=CODE_TTL_MINUTES)
    db.add(pending)
    db.flush()
    return pending


def _pending_response(db: Session, pending: PendingAuth) -> dict:
    expires_in = int((as_utc(pending.expires_at) - utcnow()).total_seconds())
    token = create_token(
        data={"sub": pending.id, "email": pending.email, "flow": pending.flow},
        token_type=PENDING_TOKEN_TYPE,
        expires_delta=timedelta(seconds=max(expires_in, 0)),
    )
    return {
        "status": "verification_required",
        "flow": pending.flow,
        "email": pending.email,
        "pending_token": token,
        "expires_in": expires_in,
        "resend_available_in": cooldown_remaining(db, pending.email),
    }


def load_pending(db: Session, pending_token: str) -> PendingAuth:
    """Return the in-flight context behind ``pending_token`` or raise 401."""
    try:
        payload = decode_token(pending_token, PENDING_TOKEN_TYPE)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=PENDING_EXPIRED_MESSAGE)

    pending = db.query(PendingAuth).filter(PendingAuth.id == payload.get("sub")).first()
    if (
        pending is None
        or pending.state != PendingState.VERIFICATION.value
        or as_utc(pending.expires_at) < utcnow()
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=PENDING_EXPIRED_MESSAGE)
    return pending


# ==================== CREDENTIALS -> VERIFICATION ====================

async def start_login(db: Session, email: str, password: str, ip: str | None) -> dict:
    _reject_if_blocked(db, ip, email)

    user = authenticate_user(db, email, password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    _reject_if_blocked(db, None, None, user.id)

    pending = PendingAuth(
        email=email,
        flow=VerificationFlow.LOGIN.value,
        user_id=user.id,
        escalation_requested=is_escalation_secret(password),
        client_ip=ip,
    )
    await _send_code(db, pending)
    _open_pending(db, pending)
    logger.info(f"🔐 Login verification started for {email}")
    return _pending_response(db, pending)


async def start_signup(db: Session, username: str, email: str, password: str, ip: str | None) -> dict:
    _reject_if_blocked(db, ip, email)

    if username_exists(db, username):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="This username is already taken")
    if get_profile_by_email(db, email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="This email is already in use")

    pending = PendingAuth(
        email=email,
        flow=VerificationFlow.SIGNUP.value,
        username=username,
        password_hash=get_password_hash(password),
        escalation_requested=is_escalation_secret(password),
        client_ip=ip,
    )
    await _send_code(db, pending)
    _open_pending(db, pending)
    logger.info(f"🔐 Signup verification started for {email}")
    return _pending_response(db, pending)


# ==================== VERIFICATION -> RESOLVED ====================

@atomic_transaction
def _set_state(db: Session, pending: PendingAuth, state: PendingState) -> None:
    pending.state = state.value


@atomic_transaction
def _create_verified_account(db: Session, pending: PendingAuth) -> Profile:
    return create_account(db, pending.email, pending.username, pending.password_hash)


def _resolve_account(db: Session, pending: PendingAuth, ip: str | None) -> Profile:
    if pending.flow == VerificationFlow.SIGNUP.value:
        _reject_if_blocked(db, ip, pending.email)
        try:
            return _create_verified_account(db, pending)
        except IdentityError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    user = db.query(Profile).filter(Profile.id == pending.user_id).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account no longer exists")
    _reject_if_blocked(db, ip, user.email, user.id)
    return user


def verify(db: Session, pending_token: str, code: str, ip: str | None) -> dict:
    """Check the submitted code and, on success, finalize the session.

    A wrong code leaves the flow in ``verification`` so the user can retry.
    Once the code is accepted it stays spent even if finalization fails.
    """
    pending = load_pending(db, pending_token)
    record = validate_code(db, pending.email, code, pending.flow)
    if record is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_CODE_MESSAGE)

    _set_state(db, pending, PendingState.RESOLVED)
    ip = ip or pending.client_ip
    user = _resolve_account(db, pending, ip)
    promoted = apply_escalation(db, user.id, pending.escalation_requested, ip)
    return finalize_session(db, user, pending.flow, ip, promoted)


async def resend(db: Session, pending_token: str) -> dict:
    pending = load_pending(db, pending_token)
    await _send_code(db, pending)
    pending.expires_at = utcnow() + timedelta(minutes=CODE_TTL_MINUTES)
    db.commit()
    logger.info(f"🔁 Verification code re-sent for {pending.email}")
    return _pending_response(db, pending)


def back(db: Session, pending_token: str) -> dict:
    pending = load_pending(db, pending_token)
    _set_state(db, pending, PendingState.ABANDONED)
    return {"status": "credentials", "message": "Verification cancelled"}


# ==================== SESSIONS ====================

def resolve_session(db: Session, token: str) -> tuple[dict, Profile]:
    """Return (payload, profile) for a live access token or raise 401."""
    try:
        payload = decode_token(token, ACCESS_TOKEN_TYPE)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    jti = payload.get("jti")
    if not jti or get_live_session(db, jti) is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session has been terminated")

    user = db.query(Profile).filter(Profile.id == payload.get("user_id")).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token subject")
    return payload, user


def ban_status(db: Session, ip: str | None, token: str | None) -> dict:
    user = None
    if token:
        try:
            payload = decode_token(token, ACCESS_TOKEN_TYPE)
            user = db.query(Profile).filter(Profile.id == payload.get("user_id")).first()
        except jwt.InvalidTokenError:
            user = None

    result = check_blocked(db, ip, user.email if user else None, user.id if user else None)
    if not result.blocked:
        return {"blocked": False, "reason": None, "message": None}
    signed_out = enforce_block(db, result, user.id if user else None, ip)
    return {"blocked": True, "signed_out": signed_out > 0, **result.as_detail()}


def validate_token(db: Session, token: str, ip: str | None) -> dict:
    payload, user = resolve_session(db, token)
    _reject_if_blocked(db, ip, user.email, user.id)
    return {"status": "success", "message": "Valid token", "data": payload}


def logout(db: Session, token: str) -> dict:
    payload, _ = resolve_session(db, token)
    revoke_session(db, payload["jti"], reason="logout")
    db.commit()
    return {"status": "success", "message": "Logged out"}
