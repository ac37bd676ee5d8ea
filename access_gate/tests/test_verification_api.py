from unittest.mock import patch

from access_gate.models.user_model import Profile
from access_gate.services.audit_service import count_events

EMAIL = "testuser@example.com"
SECRET = "Escalation-Secret-For-Tests!"


def _send(client, **body):
    return client.post("/send-verification-email", json=body)


def test_send_code(client, sent_emails, codes_for):
    response = _send(client, email=EMAIL, type="signup")

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Verification code sent"}
    rows = codes_for(EMAIL)
    assert len(rows) == 1
    assert rows[0].flow == "signup"
    sent_emails.assert_awaited_once()


def test_send_code_requires_type(client, codes_for):
    response = _send(client, email=EMAIL)

    assert response.status_code == 400
    assert response.json()["detail"] == "Email and type are required"
    assert codes_for(EMAIL) == []


def test_send_code_rejects_unknown_type(client):
    assert _send(client, email=EMAIL, type="reset").status_code == 400


def test_send_code_malformed_json(client):
    response = client.post(
        "/send-verification-email",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 500


def test_send_code_delivery_failure_allows_immediate_retry(client, sent_emails, codes_for):
    sent_emails.side_effect = Exception("SMTP unavailable")

    response = _send(client, email=EMAIL, type="login")

    assert response.status_code == 500
    assert response.json()["detail"]["error"] == "delivery_failed"
    assert codes_for(EMAIL) == []

    sent_emails.side_effect = None
    assert _send(client, email=EMAIL, type="login").status_code == 200
    assert len(codes_for(EMAIL)) == 1


def test_send_code_inside_cooldown(client):
    assert _send(client, email=EMAIL, type="login").status_code == 200
    response = _send(client, email=EMAIL, type="login")

    assert response.status_code == 429
    assert response.json()["detail"]["retry_after"] > 0


def test_verify_code_once(client, codes_for):
    _send(client, email=EMAIL, type="login")
    code = codes_for(EMAIL)[0].code

    response = client.post("/verify-code", json={"email": EMAIL, "code": code, "type": "login"})
    assert response.status_code == 200
    assert response.json()["valid"] is True
    assert response.json()["promotedToAdmin"] is False
    assert codes_for(EMAIL)[0].verified is True

    replay = client.post("/verify-code", json={"email": EMAIL, "code": code, "type": "login"})
    assert replay.status_code == 400
    assert replay.json() == {"valid": False, "error": "Invalid or expired code"}


def test_verify_code_wrong_code(client, codes_for):
    _send(client, email=EMAIL, type="login")
    code = codes_for(EMAIL)[0].code
    wrong = "000000" if code != "000000" else "111111"

    response = client.post("/verify-code", json={"email": EMAIL, "code": wrong, "type": "login"})

    assert response.status_code == 400
    assert response.json()["valid"] is False
    assert codes_for(EMAIL)[0].verified is False


def test_verify_code_wrong_flow(client, codes_for):
    _send(client, email=EMAIL, type="signup")
    code = codes_for(EMAIL)[0].code

    response = client.post("/verify-code", json={"email": EMAIL, "code": code, "type": "login"})

    assert response.status_code == 400


def test_verify_code_missing_fields(client):
    response = client.post("/verify-code", json={"email": EMAIL, "type": "login"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Email, code and type are required"


@patch("access_gate.services.code_service.RESEND_COOLDOWN_SECONDS", 0)
@patch("access_gate.services.escalation_service.ADMIN_ESCALATION_SECRET", SECRET)
def test_verify_code_promotes_once(client, db_session, make_user, codes_for):
    user = make_user()

    for expected in (True, False):
        _send(client, email=EMAIL, type="login", user_id=user.id)
        code = codes_for(EMAIL)[0].code
        response = client.post(
            "/verify-code",
            json={"email": EMAIL, "code": code, "type": "login", "password": SECRET},
        )
        assert response.status_code == 200
        assert response.json()["promotedToAdmin"] is expected

    db_session.expire_all()
    assert db_session.query(Profile).filter_by(id=user.id).first().role == "admin"
    assert count_events(db_session, "admin_promotion", user.id) == 1


@patch("access_gate.services.escalation_service.ADMIN_ESCALATION_SECRET", SECRET)
def test_verify_code_without_account_never_promotes(client, codes_for):
    _send(client, email=EMAIL, type="signup")
    code = codes_for(EMAIL)[0].code

    response = client.post(
        "/verify-code",
        json={"email": EMAIL, "code": code, "type": "signup", "password": SECRET},
    )

    assert response.json()["promotedToAdmin"] is False


def test_cors_preflight(client):
    response = client.options(
        "/verify-code",
        headers={
            "Origin": "https://app.example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type",
        },
    )
    assert response.status_code == 200
    assert "access-control-allow-origin" in response.headers
