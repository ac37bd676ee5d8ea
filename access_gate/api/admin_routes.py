from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from access_gate.api.deps import get_current_admin
from access_gate.db.session import get_db
from access_gate.models.user_model import Profile
from access_gate.schemas.auth_scheme import AccountStatusRequest, BanEmailRequest, BanIPRequest, ProfileRead
from access_gate.services import admin_handlers

router = APIRouter()


@router.get("/users", response_model=list[ProfileRead])
def list_users(admin: Profile = Depends(get_current_admin), db: Session = Depends(get_db)):
    return admin_handlers.list_profiles(db)


@router.patch("/users/{user_id}/active")
def set_user_active(
    user_id: str,
    request: AccountStatusRequest,
    admin: Profile = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return admin_handlers.set_account_active(db, admin, user_id, request.active)


@router.post("/banned-ips")
def ban_ip(request: BanIPRequest, admin: Profile = Depends(get_current_admin), db: Session = Depends(get_db)):
    return admin_handlers.ban_ip(db, admin, request.ip_address, request.reason)


@router.delete("/banned-ips/{ip_address}")
def unban_ip(ip_address: str, admin: Profile = Depends(get_current_admin), db: Session = Depends(get_db)):
    return admin_handlers.unban_ip(db, admin, ip_address)


@router.post("/banned-emails")
def ban_email(request: BanEmailRequest, admin: Profile = Depends(get_current_admin), db: Session = Depends(get_db)):
    return admin_handlers.ban_email(db, admin, request.email, request.reason)


@router.delete("/banned-emails/{email}")
def unban_email(email: str, admin: Profile = Depends(get_current_admin), db: Session = Depends(get_db)):
    return admin_handlers.unban_email(db, admin, email)
