"""
Email producers for the signup, password-reset and payment flows. They only
render and enqueue; delivery, quota and retries belong to the email pipeline.
"""
from decimal import Decimal
from urllib.parse import urljoin

from flask import current_app, render_template

from app.models.email_job import (
    TYPE_VERIFICATION,
    TYPE_VERIFICATION_RESEND,
    TYPE_PASSWORD_RESET,
    TYPE_PAYMENT_NOTIFICATION,
)
from app.utils.helpers import utcnow
from . import tokens
from .email_queue import enqueue_email_job

ACCENTS = {
    "verify": "#667eea",
    "reset": "#ec4899",
    "payment": "#10b981",
    "warning": "#f59e0b",
}

PAYMENT_STATUSES = {
    "RECEIVED": ("Payment received", "We received your payment and it is awaiting review."),
    "APPROVED": ("Payment approved", "Your payment has been approved. Your enrollment is now active."),
    "REJECTED": ("Payment rejected", "Unfortunately your payment could not be approved."),
}


def absolute_url(path: str) -> str:
    base = current_app.config["APP_BASE_URL"].rstrip("/") + "/"
    return urljoin(base, path.lstrip("/"))


def _render(template: str, user, accent: str, **context) -> str:
    cfg = current_app.config
    return render_template(
        f"email/{template}.html",
        user_name=getattr(user, "name", None) or user.email,
        site_name=cfg.get("SITE_NAME", "Course Portal"),
        support_email=cfg.get("SUPPORT_EMAIL"),
        base_url=cfg["APP_BASE_URL"],
        year=utcnow().year,
        accent=accent,
        **context,
    )


def queue_verification_email(user, resend: bool = False) -> int:
    token = tokens.generate(tokens.KIND_VERIFY, user.email.lower())
    html = _render(
        "verify",
        user,
        ACCENTS["verify"],
        title="Verify your email",
        action_url=absolute_url(f"auth/verify?token={token}"),
        token_ttl_minutes=tokens.VERIFY_TTL_MINUTES,
        resend=resend,
    )
    return enqueue_email_job(
        type=TYPE_VERIFICATION_RESEND if resend else TYPE_VERIFICATION,
        user_id=user.id,
        email=user.email,
        subject="Verify your email",
        html=html,
    )


def queue_password_reset_email(user) -> int:
    token = tokens.generate(tokens.KIND_RESET, user.email.lower())
    html = _render(
        "reset",
        user,
        ACCENTS["reset"],
        title="Reset your password",
        action_url=absolute_url(f"auth/password/reset?token={token}"),
        token_ttl_minutes=tokens.RESET_TTL_MINUTES,
    )
    return enqueue_email_job(
        type=TYPE_PASSWORD_RESET,
        user_id=user.id,
        email=user.email,
        subject="Reset your password",
        html=html,
    )


def queue_payment_notification(user, status: str, amount, reference: str, note: str | None = None) -> int:
    status = (status or "").upper()
    if status not in PAYMENT_STATUSES:
        raise ValueError(f"Unknown payment status: {status!r}")
    label, headline = PAYMENT_STATUSES[status]
    html = _render(
        "payment",
        user,
        ACCENTS["warning"] if status == "REJECTED" else ACCENTS["payment"],
        title=label,
        headline=headline,
        status_label=label,
        amount=f"{Decimal(str(amount)):.2f}",
        reference=reference,
        note=note,
        action_url=absolute_url("dashboard/enrollments"),
    )
    return enqueue_email_job(
        type=TYPE_PAYMENT_NOTIFICATION,
        user_id=user.id,
        email=user.email,
        subject=f"{label} – {reference}",
        html=html,
        is_admin=(status == "RECEIVED"),
    )
