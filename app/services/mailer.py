import json
import smtplib
import time

from flask import current_app
from flask_mail import Message

from app.extensions import mail
from .email_errors import TransportError
from .email_quota import check_send_allowed, consume_quota_and_log


def send_mail(to_email: str, subject: str, html: str) -> None:
    """
    SMTP transport. Stateless; every failure surfaces as TransportError with a
    message an operator can act on.
    """
    msg = Message(subject=subject, recipients=[to_email], html=html)

    start = time.perf_counter()
    try:
        mail.send(msg)
    except smtplib.SMTPAuthenticationError as ex:
        _log_transport_error(to_email, subject, ex, start)
        raise TransportError("Email authentication failed. Check your SMTP credentials.") from ex
    except (smtplib.SMTPConnectError, smtplib.SMTPServerDisconnected, ConnectionError, TimeoutError) as ex:
        _log_transport_error(to_email, subject, ex, start)
        raise TransportError("Cannot connect to email server. Check SMTP settings.") from ex
    except Exception as ex:
        _log_transport_error(to_email, subject, ex, start)
        raise TransportError(f"Failed to send email: {ex}") from ex

    current_app.logger.info(json.dumps({
        "event": "mail_send",
        "to": to_email.lower(),
        "subject": subject,
        "outcome": "sent",
        "latency_ms": int((time.perf_counter() - start) * 1000),
    }))


def _log_transport_error(to_email: str, subject: str, ex: Exception, start: float) -> None:
    current_app.logger.warning(json.dumps({
        "event": "mail_send",
        "to": to_email.lower(),
        "subject": subject,
        "outcome": "smtp_error",
        "error_type": type(ex).__name__,
        "smtp_error": str(ex),
        "latency_ms": int((time.perf_counter() - start) * 1000),
    }))


def deliver_system_email(user_id, to_email: str, subject: str, html: str, is_admin: bool = False) -> None:
    """check (cooldown + quota) -> send. Nothing is recorded until record_system_email."""
    check_send_allowed(user_id, is_admin=is_admin)
    send_mail(to_email, subject, html)


def record_system_email(user_id, to_email: str, type: str, is_admin: bool = False, job_id=None):
    return consume_quota_and_log(user_id, to_email, type, is_admin=is_admin, job_id=job_id)
