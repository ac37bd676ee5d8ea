from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from access_gate.api.deps import get_client_ip
from access_gate.db.session import get_db
from access_gate.services.verification_handlers import (
    send_verification_code as svc_send_verification_code,
    verify_verification_code as svc_verify_verification_code,
)

router = APIRouter()


async def _json_body(request: Request):
    try:
        return await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail={"error": "Invalid JSON body"})


@router.post("/send-verification-email")
async def send_verification_email(request: Request, db: Session = Depends(get_db)):
    return await svc_send_verification_code(db, await _json_body(request))


@router.post("/verify-code")
async def verify_code(request: Request, db: Session = Depends(get_db)):
    return svc_verify_verification_code(db, await _json_body(request), get_client_ip(request))
