from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from .base import Base, utcnow


class AuthSession(Base):
    """Server-side record behind every access token; keyed by the token's jti."""

    __tablename__ = "auth_sessions"

    id = Column(String(32), primary_key=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    ip_address = Column(String(45), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoke_reason = Column(String, nullable=True)

    __table_args__ = (
        Index("idx_sessions_user_live", "user_id", "revoked_at"),
    )
