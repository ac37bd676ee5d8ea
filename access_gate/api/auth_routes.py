from fastapi import APIRouter, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from access_gate.api.deps import get_client_ip, optional_security, security
from access_gate.db.session import get_db
from access_gate.schemas.auth_scheme import (
    GateVerifyRequest,
    LoginRequest,
    PendingTokenRequest,
    SignupRequest,
)
from access_gate.services.auth_handlers import (
    back as svc_back,
    ban_status as svc_ban_status,
    logout as svc_logout,
    resend as svc_resend,
    start_login as svc_start_login,
    start_signup as svc_start_signup,
    validate_token as svc_validate_token,
    verify as svc_verify,
)

router = APIRouter()


# Credentials step: ban checks, then a code is emailed and a pending token returned
@router.post("/login")
async def login(request: LoginRequest, http_request: Request, db: Session = Depends(get_db)):
    return await svc_start_login(db, request.email, request.password, get_client_ip(http_request))


@router.post("/signup")
async def signup(request: SignupRequest, http_request: Request, db: Session = Depends(get_db)):
    return await svc_start_signup(db, request.username, request.email, request.password, get_client_ip(http_request))


# Verification step
@router.post("/verify")
def verify(request: GateVerifyRequest, http_request: Request, db: Session = Depends(get_db)):
    return svc_verify(db, request.pending_token, request.code, get_client_ip(http_request))


@router.post("/resend")
async def resend(request: PendingTokenRequest, db: Session = Depends(get_db)):
    return await svc_resend(db, request.pending_token)


@router.post("/back")
def back(request: PendingTokenRequest, db: Session = Depends(get_db)):
    return svc_back(db, request.pending_token)


# Session checks
@router.get("/ban-status")
def ban_status(
    http_request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_security),
    db: Session = Depends(get_db),
):
    token = credentials.credentials if credentials else None
    return svc_ban_status(db, get_client_ip(http_request), token)


@router.get("/validate-token")
def validate_token(
    http_request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
):
    return svc_validate_token(db, credentials.credentials, get_client_ip(http_request))


@router.post("/logout")
def logout(credentials: HTTPAuthorizationCredentials = Depends(security), db: Session = Depends(get_db)):
    return svc_logout(db, credentials.credentials)
