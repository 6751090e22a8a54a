from flask import request, jsonify
from flask_login import login_user, logout_user, current_user
from flask_wtf.csrf import generate_csrf
from sqlalchemy import func

from app.extensions import db, limiter, csrf
from app.models.user import User
from app.services import tokens
from app.services.notifications import queue_verification_email, queue_password_reset_email
from app.services.policy import login_required_json
from app.utils.helpers import utcnow, iso
from app.utils.validators import clean_str, is_valid_email, normalize_email
from . import bp

MIN_PASSWORD_LENGTH = 8


def _payload() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


def _login_email_scope():
    email = normalize_email(_payload().get("email"))
    # Keep a stable scope even if email is blank
    return f"login-email:{email or 'missing'}"


def _find_user(email: str):
    return db.session.execute(
        db.select(User).where(func.lower(User.email) == func.lower(email))
    ).scalar_one_or_none()


def _user_json(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "email_verified_at": iso(user.email_verified_at),
    }


def _error(message: str, code: int = 400):
    return jsonify({"error": message, "code": code}), code


@bp.post("/register")
@limiter.limit("5 per minute; 20 per hour")
def register():
    data = _payload()
    name = clean_str(data.get("name"), 120)
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""

    errors = []
    if not is_valid_email(email):
        errors.append("A valid email is required.")
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if email and _find_user(email):
        errors.append("An account with that email already exists. Try signing in.")
    if errors:
        return jsonify({"error": "validation_error", "errors": errors, "code": 400}), 400

    user = User(name=name or "", email=email)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    job_id = queue_verification_email(user)
    login_user(user)
    return jsonify({"user": _user_json(user), "verification_job_id": job_id}), 201


@bp.get("/verify")
def verify_email():
    token = (request.args.get("token") or "").strip()
    email = tokens.verify(tokens.KIND_VERIFY, token, max_age_seconds=tokens.VERIFY_TTL_MINUTES * 60) if token else None
    user = _find_user(email) if email else None
    if not user:
        return _error("invalid_or_expired_token")

    if not user.email_verified_at:
        user.email_verified_at = utcnow()
        db.session.commit()
    return jsonify({"verified": True, "user": _user_json(user)})


@bp.post("/verify/resend")
@limiter.limit("3 per hour")
@login_required_json
def resend_verification():
    if current_user.email_verified_at:
        return jsonify({"queued": False, "already_verified": True})
    job_id = queue_verification_email(current_user, resend=True)
    return jsonify({"queued": True, "job_id": job_id})


@bp.post("/password/reset-request")
@limiter.limit("10 per hour")
def reset_request():
    email = normalize_email(_payload().get("email"))
    if email:
        user = _find_user(email)
        if user and user.is_active:
            queue_password_reset_email(user)
    # Always respond the same way
    return jsonify({"ok": True}), 202


@bp.post("/password/reset")
@limiter.limit("10 per hour")
def reset_password():
    data = _payload()
    token = (data.get("token") or "").strip()
    password = data.get("password") or ""

    email = tokens.verify(tokens.KIND_RESET, token, max_age_seconds=tokens.RESET_TTL_MINUTES * 60) if token else None
    user = _find_user(email) if email else None
    if not user:
        return _error("invalid_or_expired_token")
    if len(password) < MIN_PASSWORD_LENGTH:
        return _error(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

    user.set_password(password)
    # Reaching the inbox proves ownership of the address
    if not user.email_verified_at:
        user.email_verified_at = utcnow()
    db.session.commit()
    return jsonify({"ok": True})


@bp.post("/login")
@limiter.limit("10 per minute; 100 per hour")              # per-IP (anon → IP via _rate_limit_key)
@limiter.limit("5 per minute; 20 per hour", key_func=_login_email_scope)  # per-account
def login():
    data = _payload()
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""
    if not email or not password:
        return _error("Email and password are required")

    user = _find_user(email)
    if not user or not user.check_password(password) or not user.is_active:
        return _error("Invalid credentials")

    login_user(user)
    return jsonify({"user": _user_json(user)})


@bp.post("/logout")
def logout():
    if current_user.is_authenticated:
        logout_user()
    return jsonify({"ok": True})


@csrf.exempt
@bp.get("/csrf-token")
def csrf_token():
    token = generate_csrf()
    resp = jsonify({"csrf_token": token})
    # keep tokens fresh; avoid caches holding stale tokens
    resp.headers["Cache-Control"] = "no-store"
    return resp
