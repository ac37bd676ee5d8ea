"""
One-time verification codes: generation, storage, delivery and consumption.

Codes are keyed by (email, flow). Issuing a new code for an email removes
every unverified code for that email first, so at most one code is ever
live. Consuming a code flips ``verified`` through a conditional UPDATE,
which makes each code single-use even under concurrent submissions.
"""
import math
import os
import secrets
import logging
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.orm import Session

from access_gate.db.transactions import atomic_transaction, retry_on_deadlock
from access_gate.models.base import utcnow, as_utc
from access_gate.models.verification_code import VerificationCode, VerificationFlow
from access_gate.services.email_service import send_email_html, render_verification_email

logger = logging.getLogger(__name__)

CODE_TTL_MINUTES = int(os.getenv("CODE_TTL_MINUTES", "10"))
RESEND_COOLDOWN_SECONDS = int(os.getenv("RESEND_COOLDOWN_SECONDS", "60"))
# 0 disables the cap
MAX_VERIFY_ATTEMPTS = int(os.getenv("MAX_VERIFY_ATTEMPTS", "0"))


class DeliveryFailed(Exception):
    """The code was stored but the email could not be sent."""


class ResendCooldown(Exception):
    def __init__(self, retry_after: int):
        super().__init__(f"A code was sent recently, retry in {retry_after}s")
        self.retry_after = retry_after


def generate_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def _flow_value(flow) -> str:
    return VerificationFlow(flow).value


def cooldown_remaining(db: Session, email: str, now: datetime | None = None) -> int:
    """Seconds left before another code may be issued for ``email``."""
    if RESEND_COOLDOWN_SECONDS <= 0:
        return 0
    now = now or utcnow()
    latest = (
        db.query(VerificationCode)
        .filter(
            VerificationCode.email == email,
            VerificationCode.verified.is_(False),
            VerificationCode.expires_at >= now,
        )
        .order_by(VerificationCode.created_at.desc())
        .first()
    )
    if latest is None:
        return 0
    elapsed = (now - as_utc(latest.created_at)).total_seconds()
    return max(0, math.ceil(RESEND_COOLDOWN_SECONDS - elapsed))


@retry_on_deadlock(max_attempts=3)
@atomic_transaction
def store_code(db: Session, email: str, flow, user_id: str | None = None, now: datetime | None = None) -> VerificationCode:
    """
    Replace any unverified code for ``email`` with a fresh one.

    Raises:
        ResendCooldown: a live code for this email is younger than the cooldown
    """
    now = now or utcnow()
    retry_after = cooldown_remaining(db, email, now)
    if retry_after > 0:
        raise ResendCooldown(retry_after)

    removed = (
        db.query(VerificationCode)
        .filter(VerificationCode.email == email, VerificationCode.verified.is_(False))
        .delete(synchronize_session=False)
    )
    record = VerificationCode(
        email=email,
        code=generate_code(),
        flow=_flow_value(flow),
        user_id=user_id,
        expires_at=now + timedelta(minutes=CODE_TTL_MINUTES),
        verified=False,
        attempts=0,
        created_at=now,
    )
    db.add(record)
    db.flush()
    logger.info(f"✅ Verification code stored for {email} ({record.flow}), superseded {removed}")
    return record


@atomic_transaction
def _discard_undelivered(db: Session, record_id: int) -> None:
    db.query(VerificationCode).filter(
        VerificationCode.id == record_id,
        VerificationCode.verified.is_(False),
    ).delete(synchronize_session=False)


async def issue_code(db: Session, email: str, flow, user_id: str | None = None, now: datetime | None = None) -> VerificationCode:
    """
    Store a new code and email it.

    Raises:
        ResendCooldown: issuance is inside the cooldown window
        DeliveryFailed: the email did not go out; the undelivered code is
            discarded so the user can request another one right away
    """
    record = store_code(db, email, flow, user_id=user_id, now=now)
    subject, html, plain = render_verification_email(record.code, record.flow, CODE_TTL_MINUTES)
    try:
        await send_email_html(subject, [email], html, plain)
    except Exception as e:
        logger.error(f"❌ Verification email delivery failed for {email}: {e}")
        _discard_undelivered(db, record.id)
        raise DeliveryFailed(str(e)) from e
    logger.info(f"📧 Verification code sent to {email}")
    return record


def _register_failed_attempt(db: Session, email: str, flow: str, now: datetime) -> None:
    live = (
        db.query(VerificationCode)
        .filter(
            VerificationCode.email == email,
            VerificationCode.flow == flow,
            VerificationCode.verified.is_(False),
            VerificationCode.expires_at >= now,
        )
        .all()
    )
    for record in live:
        record.attempts = (record.attempts or 0) + 1
        if record.attempts >= MAX_VERIFY_ATTEMPTS:
            record.expires_at = now - timedelta(seconds=1)
            logger.warning(f"⚠️  Verification code for {email} burned after {record.attempts} failed attempts")


@atomic_transaction
def validate_code(db: Session, email: str, code: str, flow, now: datetime | None = None) -> VerificationCode | None:
    """
    Consume a code.

    Returns the (now verified) record, or None when nothing matches. A miss
    can mean a wrong code, a wrong flow, an expired code or a code already
    used; callers must not tell these apart.
    """
    now = now or utcnow()
    flow = _flow_value(flow)
    record = (
        db.query(VerificationCode)
        .filter(
            VerificationCode.email == email,
            VerificationCode.code == code,
            VerificationCode.flow == flow,
            VerificationCode.verified.is_(False),
            VerificationCode.expires_at >= now,
        )
        .order_by(VerificationCode.created_at.desc())
        .first()
    )
    if record is None:
        if MAX_VERIFY_ATTEMPTS > 0:
            _register_failed_attempt(db, email, flow, now)
        logger.warning(f"⚠️  Invalid or expired verification code for: {email}")
        return None

    claimed = db.execute(
        update(VerificationCode)
        .where(VerificationCode.id == record.id, VerificationCode.verified.is_(False))
        .values(verified=True)
        .execution_options(synchronize_session=False)
    ).rowcount
    if claimed != 1:
        logger.warning(f"⚠️  Verification code for {email} was consumed concurrently")
        return None
    record.verified = True

    logger.info(f"✅ Verification code validated for: {email}")
    return record
