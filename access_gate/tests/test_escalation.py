from unittest.mock import patch

import pytest

from access_gate.models.user_model import Profile, UserRole
from access_gate.services.audit_service import count_events
from access_gate.services.escalation_service import (
    apply_escalation,
    is_escalation_secret,
    promote_to_admin,
)

SECRET = "Escalation-Secret-For-Tests!"


@pytest.fixture
def escalation_secret():
    with patch("access_gate.services.escalation_service.ADMIN_ESCALATION_SECRET", SECRET):
        yield SECRET


def test_secret_disabled_when_unset():
    with patch("access_gate.services.escalation_service.ADMIN_ESCALATION_SECRET", None):
        assert is_escalation_secret("anything") is False
        assert is_escalation_secret("") is False


def test_secret_comparison(escalation_secret):
    assert is_escalation_secret(SECRET) is True
    assert is_escalation_secret(SECRET + " ") is False
    assert is_escalation_secret(None) is False


def test_promotion_is_idempotent(db_session, make_user):
    user = make_user()

    assert promote_to_admin(db_session, user.id) is True
    assert promote_to_admin(db_session, user.id) is False

    db_session.expire_all()
    assert db_session.query(UserRole).filter_by(user_id=user.id, role="admin").count() == 1
    assert db_session.query(Profile).filter_by(id=user.id).first().role == "admin"
    assert count_events(db_session, "admin_promotion", user.id) == 1


def test_apply_escalation_publishes_alert_once(db_session, make_user):
    user = make_user()
    with patch("access_gate.services.escalation_service.publish_security_event") as mock_publish:
        assert apply_escalation(db_session, user.id, requested=True, ip="9.9.9.9") is True
        assert apply_escalation(db_session, user.id, requested=True, ip="9.9.9.9") is False
    mock_publish.assert_called_once_with("admin_promotion", {"user_id": user.id, "ip": "9.9.9.9"})


def test_apply_escalation_needs_request_and_account(db_session, make_user):
    user = make_user()
    assert apply_escalation(db_session, user.id, requested=False) is False
    assert apply_escalation(db_session, None, requested=True) is False
    assert count_events(db_session, "admin_promotion") == 0
