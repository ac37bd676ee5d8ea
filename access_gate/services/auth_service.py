"""
Identity provider adapter: password hashes, accounts and JWT sessions.

Access tokens carry a ``jti`` that points at an ``auth_sessions`` row, so a
session can be terminated server-side (forced sign-out) before the token
itself expires.
"""
import os
import uuid
import logging
from datetime import datetime, timedelta

import jwt
from dotenv import load_dotenv
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from access_gate.models.auth_session import AuthSession
from access_gate.models.base import utcnow, as_utc
from access_gate.models.user_model import Profile

load_dotenv()

logger = logging.getLogger(__name__)

SECRET_KEY = os.getenv("SECRET_KEY")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

ACCESS_TOKEN_TYPE = "access"
PENDING_TOKEN_TYPE = "pending_auth"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class IdentityError(Exception):
    """The identity provider refused an operation."""


def _signing_key() -> str:
    if not SECRET_KEY:
        raise RuntimeError("SECRET_KEY is not configured")
    return SECRET_KEY


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_token(data: dict, token_type: str, expires_delta: timedelta | None = None) -> str:
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode["exp"] = utcnow() + expires_delta
    to_encode["type"] = token_type
    to_encode.setdefault("jti", uuid.uuid4().hex)
    return jwt.encode(to_encode, _signing_key(), algorithm=ALGORITHM)


def decode_token(token: str, token_type: str) -> dict:
    """Decode and check the ``type`` claim.

    Raises jwt.InvalidTokenError (ExpiredSignatureError included).
    """
    payload = jwt.decode(token, _signing_key(), algorithms=[ALGORITHM])
    if payload.get("type") != token_type:
        raise jwt.InvalidTokenError(f"Invalid token type: {payload.get('type')}")
    return payload


# ==================== ACCOUNTS ====================

def get_profile_by_email(db: Session, email: str) -> Profile | None:
    return db.query(Profile).filter(Profile.email == email).first()


def username_exists(db: Session, username: str) -> bool:
    return db.query(Profile).filter(Profile.username == username).first() is not None


def authenticate_user(db: Session, email: str, password: str) -> Profile | None:
    """Read-only credential check."""
    user = get_profile_by_email(db, email)
    if not user:
        return None
    if not verify_password(password, user.password):
        return None
    return user


def create_account(db: Session, email: str, username: str | None, password_hash: str | None) -> Profile:
    """Add a profile to the current transaction.

    Raises:
        IdentityError: email or username already taken
    """
    if get_profile_by_email(db, email):
        raise IdentityError("This email is already in use")
    if username and username_exists(db, username):
        raise IdentityError("This username is already taken")
    user = Profile(email=email, username=username, password=password_hash)
    db.add(user)
    db.flush()
    logger.info(f"✅ Account created: {email}")
    return user


# ==================== SESSIONS ====================

def open_session(db: Session, user: Profile, ip: str | None = None) -> str:
    """Add a session row to the current transaction and return its access token."""
    jti = uuid.uuid4().hex
    expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    db.add(AuthSession(
        id=jti,
        user_id=user.id,
        ip_address=ip,
        expires_at=utcnow() + expires_delta,
    ))
    db.flush()
    return create_token(
        data={
            "sub": user.email,
            "user_id": user.id,
            "username": user.username,
            "role": user.role,
            "jti": jti,
        },
        token_type=ACCESS_TOKEN_TYPE,
        expires_delta=expires_delta,
    )


def get_live_session(db: Session, jti: str, now: datetime | None = None) -> AuthSession | None:
    now = now or utcnow()
    session = db.query(AuthSession).filter(AuthSession.id == jti).first()
    if session is None or session.revoked_at is not None:
        return None
    if as_utc(session.expires_at) < now:
        return None
    return session


def revoke_session(db: Session, jti: str, reason: str) -> bool:
    session = db.query(AuthSession).filter(AuthSession.id == jti, AuthSession.revoked_at.is_(None)).first()
    if session is None:
        return False
    session.revoked_at = utcnow()
    session.revoke_reason = reason
    return True


def revoke_all_sessions(db: Session, user_id: str, reason: str) -> int:
    """Terminate every live session of ``user_id``; the caller commits."""
    revoked = (
        db.query(AuthSession)
        .filter(AuthSession.user_id == user_id, AuthSession.revoked_at.is_(None))
        .update({"revoked_at": utcnow(), "revoke_reason": reason}, synchronize_session=False)
    )
    if revoked:
        logger.warning(f"⚠️  Revoked {revoked} session(s) for user {user_id}: {reason}")
    return revoked
