from flask import Blueprint

bp = Blueprint("api", __name__)

from . import email_jobs  # noqa: E402,F401
