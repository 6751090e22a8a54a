import hmac
from functools import wraps
from flask import abort, request, jsonify, current_app
from flask_login import current_user

def login_required_json(fn):
    @wraps(fn)
    def _wrap(*args, **kwargs):
        if not current_user.is_authenticated:
            return _abort_smart(401)
        return fn(*args, **kwargs)
    return _wrap

def role_required(*roles):
    def deco(fn):
        @wraps(fn)
        def _wrap(*args, **kwargs):
            if not current_user.is_authenticated:
                return _abort_smart(401)
            if getattr(current_user, "role", None) not in roles:
                return _abort_smart(403)
            return fn(*args, **kwargs)
        return _wrap
    return deco

def bearer_secret_required(config_key: str):
    """Machine-to-machine guard: Authorization: Bearer <app.config[config_key]>."""
    def deco(fn):
        @wraps(fn)
        def _wrap(*args, **kwargs):
            secret = current_app.config.get(config_key)
            header = request.headers.get("Authorization") or ""
            if not secret or not hmac.compare_digest(header.encode("utf-8"), f"Bearer {secret}".encode("utf-8")):
                return _abort_smart(401)
            return fn(*args, **kwargs)
        return _wrap
    return deco

def _abort_smart(code: int):
    # If the client asked for JSON, return a JSON-shaped error
    accept = (request.headers.get("Accept") or "").lower()
    if "application/json" in accept or request.is_json or request.path.endswith(".json") or request.blueprint in ("api", "admin", "auth"):
        return jsonify({"error": {401: "unauthorized", 403: "forbidden", 404: "not_found"}[code], "code": code}), code
    abort(code)
