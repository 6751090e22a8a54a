import os
# Ensure the app factory picks the Testing config & SQLite memory DB
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///:memory:")

import pytest
from app import create_app
from app.extensions import db, cache, mail
from app.models import User, ROLE_ADMIN, ROLE_STUDENT

CRON_SECRET = "test-cron-secret"
ADMIN_PASSWORD = "admin-password-1"


@pytest.fixture(scope="session")
def app():
    app = create_app()
    app.config.update(
        TESTING=True,
        MAIL_SUPPRESS_SEND=True,
        APP_BASE_URL="http://example.test",
        WTF_CSRF_ENABLED=False,
        RATELIMIT_ENABLED=False,
        CRON_SECRET=CRON_SECRET,
        EMAIL_TRIGGER_BACKEND="sweep",
    )
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def ctx(app):
    """App context for service-level tests."""
    with app.app_context():
        yield
        db.session.rollback()


def _wipe():
    db.session.rollback()
    for tbl in reversed(db.metadata.sorted_tables):
        db.session.execute(tbl.delete())
    db.session.commit()
    cache.clear()


@pytest.fixture(autouse=True)
def _db_clean(app):
    # Clean BEFORE each test
    with app.app_context():
        _wipe()
    yield
    # And AFTER each test (keeps state hermetic even if a test fails mid-transaction)
    with app.app_context():
        _wipe()


@pytest.fixture()
def make_user(app):
    """Factory: create a user and return its id (ids survive session boundaries)."""
    counter = {"n": 0}

    def _make(email=None, role=ROLE_STUDENT, name="Student", password="password-123", verified=False):
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.test"
        with app.app_context():
            user = User(email=email, name=name, role=role, is_active=True)
            user.set_password(password)
            if verified:
                from app.utils.helpers import utcnow
                user.email_verified_at = utcnow()
            db.session.add(user)
            db.session.commit()
            return user.id

    return _make


@pytest.fixture()
def student_id(make_user):
    return make_user(email="student@example.test", name="Sam Student")


@pytest.fixture()
def admin_id(make_user):
    return make_user(email="admin@example.test", name="Ada Admin", role=ROLE_ADMIN, password=ADMIN_PASSWORD)


@pytest.fixture()
def admin_client(app, admin_id):
    client = app.test_client()
    resp = client.post("/auth/login", json={"email": "admin@example.test", "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return client


@pytest.fixture()
def cron_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.fixture()
def outbox(app):
    """Messages handed to Flask-Mail (suppressed, never delivered)."""
    with mail.record_messages() as sent:
        yield sent


@pytest.fixture()
def no_cooldown(app, monkeypatch):
    monkeypatch.setitem(app.config, "EMAIL_COOLDOWN_SECONDS", 0)


@pytest.fixture()
def failing_transport(monkeypatch):
    """Make every SMTP send raise; returns the list of attempted recipients."""
    attempts = []

    def _boom(message):
        attempts.append(message.recipients[0])
        raise ConnectionRefusedError("smtp down")

    monkeypatch.setattr(mail, "send", _boom)
    return attempts
