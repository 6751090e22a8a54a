from flask import Flask
from app.services import policy

class DummyUser:
    def __init__(self, uid, auth=True, role="STUDENT"): self.id, self.is_authenticated, self.role = uid, auth, role

def make_app():
    app = Flask(__name__); app.config.update(SECRET_KEY="x", TESTING=True, CRON_SECRET="s3cret")
    return app

def test_login_required_json_unauth(monkeypatch):
    app = make_app()
    @policy.login_required_json
    def v(): return "ok", 200
    monkeypatch.setattr(policy, "current_user", DummyUser(None, auth=False))
    with app.test_request_context("/x", headers={"Accept":"application/json"}):
        r = v(); assert r[1] == 401 and r[0].json["error"] == "unauthorized"

def test_role_required_forbidden(monkeypatch):
    app = make_app()
    @policy.role_required("ADMIN")
    def v(): return "ok", 200
    monkeypatch.setattr(policy, "current_user", DummyUser(7, role="STUDENT"))
    with app.test_request_context("/x", headers={"Accept":"application/json"}):
        r = v(); assert r[1] == 403 and r[0].json["error"] == "forbidden"

def test_role_required_ok(monkeypatch):
    app = make_app()
    @policy.role_required("ADMIN")
    def v(): return "ok", 200
    monkeypatch.setattr(policy, "current_user", DummyUser(7, role="ADMIN"))
    with app.test_request_context("/x", headers={"Accept":"application/json"}):
        r = v(); assert r == ("ok", 200)

def test_bearer_secret_required(monkeypatch):
    app = make_app()
    @policy.bearer_secret_required("CRON_SECRET")
    def v(): return "ok", 200
    with app.test_request_context("/x", headers={"Accept":"application/json", "Authorization": "Bearer s3cret"}):
        assert v() == ("ok", 200)
    with app.test_request_context("/x", headers={"Accept":"application/json", "Authorization": "Bearer nope"}):
        r = v(); assert r[1] == 401
    with app.test_request_context("/x", headers={"Accept":"application/json"}):
        r = v(); assert r[1] == 401

def test_bearer_secret_unset_rejects_everything(monkeypatch):
    app = make_app(); app.config["CRON_SECRET"] = None
    @policy.bearer_secret_required("CRON_SECRET")
    def v(): return "ok", 200
    with app.test_request_context("/x", headers={"Accept":"application/json", "Authorization": "Bearer None"}):
        r = v(); assert r[1] == 401
