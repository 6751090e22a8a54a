from app.extensions import db
from app.models import EmailJob, User
from app.models.email_job import TYPE_VERIFICATION, TYPE_VERIFICATION_RESEND, TYPE_PASSWORD_RESET, STATUS_QUEUED
from app.services import tokens


def _jobs(app, type=None):
    with app.app_context():
        stmt = db.select(EmailJob).order_by(EmailJob.id)
        if type:
            stmt = stmt.where(EmailJob.type == type)
        return [(j.id, j.type, j.user_id, j.status, j.html) for j in db.session.execute(stmt).scalars()]


def _user(app, email):
    with app.app_context():
        return db.session.execute(db.select(User).where(User.email == email)).scalar_one_or_none()


def test_register_creates_user_and_queues_verification(app, client):
    r = client.post("/auth/register", json={"name": "New Student", "email": "New@Example.test",
                                           "password": "long-enough"})
    assert r.status_code == 201
    body = r.get_json()
    assert body["user"]["email"] == "new@example.test"
    assert body["user"]["role"] == "STUDENT"

    jobs = _jobs(app, TYPE_VERIFICATION)
    assert len(jobs) == 1
    job_id, _, user_id, status, html = jobs[0]
    assert job_id == body["verification_job_id"]
    assert user_id == body["user"]["id"]
    assert status == STATUS_QUEUED
    assert "http://example.test/auth/verify?token=" in html
    assert "New Student" in html


def test_register_rejects_duplicates_and_weak_passwords(client, student_id):
    r = client.post("/auth/register", json={"email": "student@example.test", "password": "long-enough"})
    assert r.status_code == 400
    r = client.post("/auth/register", json={"email": "fresh@example.test", "password": "short"})
    assert r.status_code == 400
    r = client.post("/auth/register", json={"email": "nope", "password": "long-enough"})
    assert r.status_code == 400


def test_verify_marks_email_verified(app, client, student_id):
    with app.app_context():
        token = tokens.generate(tokens.KIND_VERIFY, "student@example.test")
    r = client.get(f"/auth/verify?token={token}")
    assert r.status_code == 200
    assert r.get_json()["verified"] is True
    assert _user(app, "student@example.test").email_verified_at is not None


def test_verify_rejects_bad_or_wrong_kind_token(app, client, student_id):
    assert client.get("/auth/verify?token=garbage").status_code == 400
    assert client.get("/auth/verify").status_code == 400
    with app.app_context():
        reset_token = tokens.generate(tokens.KIND_RESET, "student@example.test")
    assert client.get(f"/auth/verify?token={reset_token}").status_code == 400


def test_resend_requires_login_and_queues_resend_type(app, client, student_id):
    r = client.post("/auth/verify/resend")
    assert r.status_code == 401
    assert r.get_json() == {"error": "unauthorized", "code": 401}

    client.post("/auth/login", json={"email": "student@example.test", "password": "password-123"})
    r = client.post("/auth/verify/resend")
    assert r.get_json()["queued"] is True
    assert len(_jobs(app, TYPE_VERIFICATION_RESEND)) == 1


def test_resend_is_noop_once_verified(app, client, make_user):
    make_user(email="done@example.test", verified=True)
    client.post("/auth/login", json={"email": "done@example.test", "password": "password-123"})
    r = client.post("/auth/verify/resend")
    assert r.get_json() == {"queued": False, "already_verified": True}
    assert _jobs(app) == []


def test_password_reset_request_never_reveals_accounts(app, client, student_id):
    r = client.post("/auth/password/reset-request", json={"email": "student@example.test"})
    assert r.status_code == 202
    r = client.post("/auth/password/reset-request", json={"email": "ghost@example.test"})
    assert r.status_code == 202

    jobs = _jobs(app, TYPE_PASSWORD_RESET)
    assert len(jobs) == 1
    assert "http://example.test/auth/password/reset?token=" in jobs[0][4]


def test_password_reset_sets_new_password(app, client, student_id):
    with app.app_context():
        token = tokens.generate(tokens.KIND_RESET, "student@example.test")
    r = client.post("/auth/password/reset", json={"token": token, "password": "brand-new-pass"})
    assert r.status_code == 200

    r = client.post("/auth/login", json={"email": "student@example.test", "password": "brand-new-pass"})
    assert r.status_code == 200
    assert client.post("/auth/password/reset", json={"token": "bad", "password": "brand-new-pass"}).status_code == 400
    assert client.post("/auth/password/reset", json={"token": token, "password": "x"}).status_code == 400


def test_login_and_logout(client, student_id):
    r = client.post("/auth/login", json={"email": "student@example.test", "password": "wrong"})
    assert r.status_code == 400
    r = client.post("/auth/login", json={"email": "STUDENT@example.test", "password": "password-123"})
    assert r.status_code == 200
    assert r.get_json()["user"]["id"] == student_id
    assert client.post("/auth/logout").get_json() == {"ok": True}
    assert client.post("/auth/verify/resend").status_code == 401


def test_token_ttl_expiry(app):
    with app.app_context():
        t = tokens.generate(tokens.KIND_VERIFY, "user@example.com")
        # Should validate with generous max_age
        assert tokens.verify(tokens.KIND_VERIFY, t, max_age_seconds=60) == "user@example.com"
        # With tiny max_age, immediately treat as expired
        assert tokens.verify(tokens.KIND_VERIFY, t, max_age_seconds=-1) is None
