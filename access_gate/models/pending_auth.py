from enum import Enum
from sqlalchemy import Column, String, DateTime, Boolean
from .base import Base, utcnow


class PendingState(str, Enum):
    VERIFICATION = "verification"
    RESOLVED = "resolved"
    ABANDONED = "abandoned"


class PendingAuth(Base):
    """Flow context held between "code sent" and "code verified".

    Only the outcome of the escalation-secret comparison is kept, never the
    plaintext password. Signup keeps the bcrypt hash so the account can be
    created once the email is proven.
    """

    __tablename__ = "pending_auth"

    id = Column(String(32), primary_key=True)
    email = Column(String, index=True, nullable=False)
    flow = Column(String(10), nullable=False)
    username = Column(String(50), nullable=True)
    password_hash = Column(String, nullable=True)
    user_id = Column(String(36), nullable=True)
    escalation_requested = Column(Boolean, nullable=False, default=False)
    client_ip = Column(String(45), nullable=True)
    state = Column(String(20), nullable=False, default=PendingState.VERIFICATION.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)
