import ipaddress

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from access_gate.db.session import get_db
from access_gate.models.user_model import Profile, Role
from access_gate.services.auth_handlers import resolve_session

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def _parse_ip(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def get_client_ip(request: Request) -> str | None:
    """Best-effort client address; None when it cannot be determined."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = _parse_ip(forwarded.split(",")[0])
        if ip:
            return ip
    ip = _parse_ip(request.headers.get("x-real-ip"))
    if ip:
        return ip
    if request.client is not None:
        return _parse_ip(request.client.host)
    return None


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Profile:
    _, user = resolve_session(db, credentials.credentials)
    if not user.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")
    return user


def get_current_admin(current_user: Profile = Depends(get_current_user)) -> Profile:
    if current_user.role != Role.ADMIN.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin user required")
    return current_user
