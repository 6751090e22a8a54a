from datetime import timedelta

import pytest

from app.extensions import db
from app.models import EmailCounter, EmailLog
from app.models.email_counter import SCOPE_USER, SCOPE_GLOBAL, SYSTEM_KEY
from app.models.email_job import TYPE_VERIFICATION
from app.services.email_errors import QuotaExceeded, QuotaOvershoot, CooldownActive, is_capacity_error, TransportError
from app.services.email_quota import (
    check_quota,
    check_send_allowed,
    consume_quota_and_log,
    today_utc,
)
from app.services.email_cooldown import check_cooldown
from app.utils.helpers import utcnow


def _set_counter(scope, key, count, user_id=None, day=None):
    db.session.add(EmailCounter(scope=scope, key=key, date=day or today_utc(), count=count, user_id=user_id))
    db.session.commit()


def _count(scope, key):
    return db.session.execute(
        db.select(EmailCounter.count).where(
            EmailCounter.scope == scope, EmailCounter.key == key, EmailCounter.date == today_utc()
        )
    ).scalar()


def test_user_below_limit_passes(ctx, student_id):
    _set_counter(SCOPE_USER, str(student_id), 4, user_id=student_id)
    check_quota(student_id)


def test_user_at_limit_is_rejected(ctx, student_id):
    _set_counter(SCOPE_USER, str(student_id), 5, user_id=student_id)
    with pytest.raises(QuotaExceeded) as exc:
        check_quota(student_id)
    assert exc.value.scope == SCOPE_USER
    assert str(exc.value) == "Daily email limit reached"


def test_yesterdays_counter_does_not_count(ctx, student_id):
    _set_counter(SCOPE_USER, str(student_id), 5, user_id=student_id, day=today_utc() - timedelta(days=1))
    check_quota(student_id)


def test_admin_skips_user_limit(ctx, admin_id):
    _set_counter(SCOPE_USER, str(admin_id), 50, user_id=admin_id)
    check_quota(admin_id, is_admin=True)


def test_global_limit_blocks_admins_too(ctx, app, admin_id, monkeypatch):
    monkeypatch.setitem(app.config, "EMAIL_SYSTEM_DAILY_LIMIT", 3)
    _set_counter(SCOPE_GLOBAL, SYSTEM_KEY, 3)
    with pytest.raises(QuotaExceeded) as exc:
        check_quota(admin_id, is_admin=True)
    assert exc.value.scope == SCOPE_GLOBAL
    assert str(exc.value) == "System email quota exceeded"


def test_consume_creates_counters_and_log(ctx, student_id):
    entry = consume_quota_and_log(student_id, "student@example.test", TYPE_VERIFICATION, job_id=None)
    assert entry.id is not None
    assert _count(SCOPE_USER, str(student_id)) == 1
    assert _count(SCOPE_GLOBAL, SYSTEM_KEY) == 1

    consume_quota_and_log(student_id, "student@example.test", TYPE_VERIFICATION)
    assert _count(SCOPE_USER, str(student_id)) == 2
    assert _count(SCOPE_GLOBAL, SYSTEM_KEY) == 2
    assert db.session.query(EmailLog).count() == 2


def test_consume_for_admin_skips_user_counter(ctx, admin_id):
    consume_quota_and_log(admin_id, "admin@example.test", TYPE_VERIFICATION, is_admin=True)
    assert _count(SCOPE_USER, str(admin_id)) is None
    assert _count(SCOPE_GLOBAL, SYSTEM_KEY) == 1


def test_overshoot_commits_then_raises(ctx, student_id):
    # A concurrent consumer already took the last slot after our check passed
    _set_counter(SCOPE_USER, str(student_id), 5, user_id=student_id)
    with pytest.raises(QuotaOvershoot) as exc:
        consume_quota_and_log(student_id, "student@example.test", TYPE_VERIFICATION)
    assert exc.value.used == 6 and exc.value.limit == 5
    # The send happened; the ledger reflects it
    assert _count(SCOPE_USER, str(student_id)) == 6
    assert db.session.query(EmailLog).count() == 1


def test_cooldown_blocks_recent_sender(ctx, student_id):
    db.session.add(EmailLog(user_id=student_id, email="student@example.test", type=TYPE_VERIFICATION,
                            created_at=utcnow() - timedelta(seconds=20)))
    db.session.commit()
    with pytest.raises(CooldownActive) as exc:
        check_cooldown(student_id)
    assert 39 <= exc.value.seconds_left <= 41
    assert "seconds before sending another email" in str(exc.value)


def test_cooldown_expires(ctx, student_id):
    db.session.add(EmailLog(user_id=student_id, email="student@example.test", type=TYPE_VERIFICATION,
                            created_at=utcnow() - timedelta(seconds=61)))
    db.session.commit()
    check_cooldown(student_id)


def test_cooldown_disabled_with_zero_window(ctx, student_id, no_cooldown):
    db.session.add(EmailLog(user_id=student_id, email="student@example.test", type=TYPE_VERIFICATION,
                            created_at=utcnow()))
    db.session.commit()
    check_cooldown(student_id)


def test_check_send_allowed_skips_cooldown_for_admin(ctx, admin_id):
    db.session.add(EmailLog(user_id=admin_id, email="admin@example.test", type=TYPE_VERIFICATION,
                            created_at=utcnow()))
    db.session.commit()
    check_send_allowed(admin_id, is_admin=True)
    with pytest.raises(CooldownActive):
        check_send_allowed(admin_id, is_admin=False)


def test_capacity_classification_is_by_type():
    assert is_capacity_error(QuotaExceeded(SCOPE_USER))
    assert is_capacity_error(QuotaOvershoot(SCOPE_GLOBAL))
    assert is_capacity_error(CooldownActive(10))
    assert not is_capacity_error(TransportError("Daily email limit reached"))
    assert not is_capacity_error(RuntimeError("quota"))
