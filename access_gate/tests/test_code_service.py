import asyncio
from datetime import timedelta
from unittest.mock import patch

import pytest

from access_gate.models.base import utcnow
from access_gate.services.code_service import (
    DeliveryFailed,
    ResendCooldown,
    generate_code,
    issue_code,
    validate_code,
)

EMAIL = "a@x.com"


def _issue(db, email=EMAIL, flow="signup", now=None, user_id=None):
    return asyncio.run(issue_code(db, email, flow, user_id=user_id, now=now))


def test_generate_code_keeps_leading_zeros():
    with patch("access_gate.services.code_service.secrets.randbelow", return_value=42):
        assert generate_code() == "000042"


def test_generate_code_is_six_digits():
    for _ in range(50):
        code = generate_code()
        assert len(code) == 6 and code.isdigit()


def test_issue_code_stores_one_unverified_row_and_sends_email(db_session, codes_for, sent_emails):
    t0 = utcnow()
    _issue(db_session, now=t0)

    rows = codes_for(EMAIL)
    assert len(rows) == 1
    row = rows[0]
    assert row.flow == "signup"
    assert row.verified is False
    assert row.expires_at.replace(tzinfo=None) == (t0 + timedelta(minutes=10)).replace(tzinfo=None)

    sent_emails.assert_awaited_once()
    subject, recipients, html, plain = sent_emails.await_args.args
    assert recipients == [EMAIL]
    assert row.code in subject and row.code in html
    assert "10 minutes" in plain


def test_new_code_supersedes_previous_one(db_session, codes_for):
    t0 = utcnow()
    with patch("access_gate.services.code_service.secrets.randbelow", side_effect=[111111, 222222]):
        _issue(db_session, now=t0)
        _issue(db_session, now=t0 + timedelta(seconds=61))

    rows = codes_for(EMAIL)
    assert [r.code for r in rows] == ["222222"]

    later = t0 + timedelta(seconds=62)
    assert validate_code(db_session, EMAIL, "111111", "signup", now=later) is None
    assert validate_code(db_session, EMAIL, "222222", "signup", now=later) is not None


def test_issuing_for_other_flow_also_supersedes(db_session, codes_for):
    t0 = utcnow()
    _issue(db_session, flow="login", now=t0)
    _issue(db_session, flow="signup", now=t0 + timedelta(seconds=61))

    assert [r.flow for r in codes_for(EMAIL)] == ["signup"]


def test_code_is_single_use(db_session, codes_for):
    _issue(db_session)
    code = codes_for(EMAIL)[0].code

    record = validate_code(db_session, EMAIL, code, "signup")
    assert record is not None
    assert record.verified is True
    assert validate_code(db_session, EMAIL, code, "signup") is None


def test_consumed_record_reports_verified_without_reload(session_factory, codes_for):
    db = session_factory(expire_on_commit=False)
    try:
        _issue(db)
        record = validate_code(db, EMAIL, codes_for(EMAIL)[0].code, "signup")
        assert record.verified is True
    finally:
        db.close()


def test_expired_code_is_rejected_and_left_untouched(db_session, codes_for):
    t0 = utcnow()
    _issue(db_session, now=t0)
    code = codes_for(EMAIL)[0].code

    assert validate_code(db_session, EMAIL, code, "signup", now=t0 + timedelta(minutes=11)) is None
    assert codes_for(EMAIL)[0].verified is False


def test_code_for_other_flow_is_rejected(db_session, codes_for):
    _issue(db_session, flow="signup")
    code = codes_for(EMAIL)[0].code

    assert validate_code(db_session, EMAIL, code, "login") is None
    assert validate_code(db_session, EMAIL, code, "signup") is not None


def test_verified_codes_are_kept_and_survive_new_issuance(db_session, codes_for):
    t0 = utcnow()
    _issue(db_session, now=t0)
    code = codes_for(EMAIL)[0].code
    validate_code(db_session, EMAIL, code, "signup", now=t0 + timedelta(seconds=5))

    _issue(db_session, now=t0 + timedelta(seconds=10))

    rows = codes_for(EMAIL)
    assert len(rows) == 2
    assert [r.verified for r in rows] == [False, True]


def test_resend_inside_cooldown_is_refused(db_session, codes_for):
    t0 = utcnow()
    _issue(db_session, now=t0)
    first = codes_for(EMAIL)[0].code

    with pytest.raises(ResendCooldown) as excinfo:
        _issue(db_session, now=t0 + timedelta(seconds=10))
    assert excinfo.value.retry_after == 50

    rows = codes_for(EMAIL)
    assert len(rows) == 1 and rows[0].code == first


def test_cooldown_can_be_disabled(db_session, codes_for):
    t0 = utcnow()
    with patch("access_gate.services.code_service.RESEND_COOLDOWN_SECONDS", 0):
        _issue(db_session, now=t0)
        _issue(db_session, now=t0 + timedelta(seconds=1))
    assert len(codes_for(EMAIL)) == 1


def test_delivery_failure_discards_code_and_allows_retry(db_session, codes_for, sent_emails):
    sent_emails.side_effect = RuntimeError("smtp down")

    with pytest.raises(DeliveryFailed):
        _issue(db_session)

    assert codes_for(EMAIL) == []

    sent_emails.side_effect = None
    _issue(db_session)
    assert len(codes_for(EMAIL)) == 1


def test_delivery_failure_keeps_earlier_verified_codes(db_session, codes_for, sent_emails):
    t0 = utcnow()
    _issue(db_session, now=t0)
    assert validate_code(db_session, EMAIL, codes_for(EMAIL)[0].code, "signup") is not None

    sent_emails.side_effect = RuntimeError("smtp down")
    with pytest.raises(DeliveryFailed):
        _issue(db_session, now=t0 + timedelta(seconds=61))

    rows = codes_for(EMAIL)
    assert len(rows) == 1
    assert rows[0].verified is True


def test_wrong_codes_do_not_count_when_cap_disabled(db_session, codes_for):
    _issue(db_session)
    real = codes_for(EMAIL)[0].code
    wrong = "000000" if real != "000000" else "000001"

    for _ in range(10):
        assert validate_code(db_session, EMAIL, wrong, "signup") is None

    assert codes_for(EMAIL)[0].attempts == 0
    assert validate_code(db_session, EMAIL, real, "signup") is not None


def test_attempt_cap_burns_the_code(db_session, codes_for):
    _issue(db_session)
    real = codes_for(EMAIL)[0].code
    wrong = "000000" if real != "000000" else "000001"

    with patch("access_gate.services.code_service.MAX_VERIFY_ATTEMPTS", 3):
        for _ in range(3):
            assert validate_code(db_session, EMAIL, wrong, "signup") is None
        assert codes_for(EMAIL)[0].attempts == 3
        assert validate_code(db_session, EMAIL, real, "signup") is None
