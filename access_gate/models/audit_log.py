from sqlalchemy import Column, Integer, String, DateTime, JSON
from .base import Base, utcnow


class AuditLog(Base):
    __tablename__ = "logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), index=True, nullable=True)
    action_type = Column(String(50), index=True, nullable=False)
    message = Column(String, nullable=True)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
