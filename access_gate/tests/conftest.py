import sys
import os
# Make the project root importable when pytest is run from inside this directory
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../../')))
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-access-gate-suite")
import pytest
from unittest.mock import patch, AsyncMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from access_gate.main import app
from access_gate.db.session import get_db
from access_gate.db.migrations.create_tables import create_tables
from access_gate.models.base import Base
from access_gate.models.user_model import Profile, Role
from access_gate.models.verification_code import VerificationCode
from access_gate.services.auth_service import get_password_hash, open_session

TEST_PASSWORD = "testpass123"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# SMTP is never reached from tests
@pytest.fixture(autouse=True)
def sent_emails():
    with patch("access_gate.services.code_service.send_email_html", new_callable=AsyncMock) as mock_send:
        yield mock_send


@pytest.fixture
def make_user(db_session):
    def _make_user(email="testuser@example.com", username="testuser", password=TEST_PASSWORD, role=Role.USER, active=True):
        user = Profile(
            email=email,
            username=username,
            password=get_password_hash(password),
            role=role.value,
            active=active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make_user


@pytest.fixture
def auth_header(db_session):
    def _auth_header(user):
        token = open_session(db_session, user)
        db_session.commit()
        return {"Authorization": f"Bearer {token}"}
    return _auth_header


@pytest.fixture
def codes_for(db_session):
    """Rows for an email, newest first, read fresh from the database."""
    def _codes_for(email):
        db_session.expire_all()
        return (
            db_session.query(VerificationCode)
            .filter(VerificationCode.email == email)
            .order_by(VerificationCode.id.desc())
            .all()
        )
    return _codes_for
