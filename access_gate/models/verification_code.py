from enum import Enum
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Index
from .base import Base, utcnow


class VerificationFlow(str, Enum):
    LOGIN = "login"
    SIGNUP = "signup"


class VerificationCode(Base):
    __tablename__ = "verification_codes"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, index=True, nullable=False)
    code = Column(String(6), nullable=False)
    flow = Column(String(10), nullable=False)
    user_id = Column(String(36), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    verified = Column(Boolean, nullable=False, default=False)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_verification_lookup", "email", "code", "flow", "verified"),
    )
