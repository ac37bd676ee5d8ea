import logging

from access_gate.db.session import engine
from access_gate.models.base import Base
from access_gate.models.audit_log import AuditLog  # noqa: F401
from access_gate.models.auth_session import AuthSession  # noqa: F401
from access_gate.models.ban import BannedIP, BannedEmail  # noqa: F401
from access_gate.models.pending_auth import PendingAuth  # noqa: F401
from access_gate.models.user_model import Profile, UserRole  # noqa: F401
from access_gate.models.verification_code import VerificationCode  # noqa: F401

logger = logging.getLogger(__name__)


def create_tables(bind=None) -> None:
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Tables created")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    create_tables()
    print("Tables created successfully.")
