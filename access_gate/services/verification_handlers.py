"""
JSON-in/JSON-out handlers for the two raw code operations.

These keep the response shapes existing clients rely on:
``{success: true}`` after sending, and ``{valid, promotedToAdmin}`` after
verifying.
"""
import logging

from fastapi import HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from access_gate.schemas.auth_scheme import SendCodeRequest, VerifyCodeRequest
from access_gate.services.code_service import DeliveryFailed, ResendCooldown, issue_code, validate_code
from access_gate.services.escalation_service import apply_escalation, is_escalation_secret

logger = logging.getLogger(__name__)

INVALID_CODE_MESSAGE = "Invalid or expired code"


async def send_verification_code(db: Session, body) -> dict:
    try:
        request = SendCodeRequest.model_validate(body)
    except ValidationError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email and type are required")

    try:
        await issue_code(db, request.email, request.type, user_id=request.user_id)
    except ResendCooldown as e:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"error": "resend_cooldown", "retry_after": e.retry_after},
        )
    except DeliveryFailed as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "delivery_failed", "details": str(e)},
        )
    except SQLAlchemyError as e:
        logger.error(f"❌ Error inserting verification code: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to create verification code"},
        )
    return {"success": True, "message": "Verification code sent"}


def verify_verification_code(db: Session, body, ip: str | None = None):
    try:
        request = VerifyCodeRequest.model_validate(body)
    except ValidationError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email, code and type are required")

    try:
        record = validate_code(db, request.email, request.code, request.type)
        if record is None:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"valid": False, "error": INVALID_CODE_MESSAGE},
            )
        promoted = apply_escalation(db, record.user_id, is_escalation_secret(request.password), ip)
    except SQLAlchemyError as e:
        logger.error(f"❌ Error verifying code: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to verify code"},
        )
    return {"valid": True, "message": "Code verified successfully", "promotedToAdmin": promoted}
