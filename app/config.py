import os

class BaseConfig:
    # Secrets (env in prod; dev/test may use defaults)
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-not-secure")
    WTF_CSRF_SECRET_KEY = SECRET_KEY
    WTF_CSRF_TIME_LIMIT = None

    # Database (env in prod; dev/test may use default)
    try:
        from dotenv import dotenv_values
        _ENV_FALLBACK = dotenv_values(".env")
    except Exception:
        _ENV_FALLBACK = {}
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or _ENV_FALLBACK.get("DATABASE_URL") or "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Logging / misc
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Cookies: secure-by-default
    SESSION_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    # Flask-Limiter default: off globally; prefer per-route limits
    RATELIMIT_DEFAULT = None

    # --- Mail (SMTP transport) ---
    MAIL_SERVER = os.getenv("MAIL_SERVER", "localhost")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = (os.getenv("MAIL_USE_TLS", "true").lower() == "true")
    MAIL_USE_SSL = (os.getenv("MAIL_USE_SSL", "false").lower() == "true")
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "Course Portal <no-reply@local.test>")
    MAIL_SUPPRESS_SEND = (os.getenv("MAIL_SUPPRESS_SEND", "false").lower() == "true")

    # Used for absolute links in emails (must be https in prod)
    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5000")
    SITE_NAME = os.getenv("SITE_NAME", "Course Portal")
    SUPPORT_EMAIL = os.getenv("SUPPORT_EMAIL", "support@local.test")

    # Token salt for email flows
    EMAIL_TOKEN_SALT = os.getenv("EMAIL_TOKEN_SALT", "email-token-v1")

    # --- Email pipeline ---
    # Shared secret for scheduler / event-delivery callers (Authorization: Bearer <secret>)
    CRON_SECRET = os.getenv("CRON_SECRET")

    EMAIL_USER_DAILY_LIMIT = int(os.getenv("EMAIL_USER_DAILY_LIMIT", "5"))
    EMAIL_SYSTEM_DAILY_LIMIT = int(os.getenv("EMAIL_SYSTEM_DAILY_LIMIT", "400"))
    EMAIL_COOLDOWN_SECONDS = int(os.getenv("EMAIL_COOLDOWN_SECONDS", "60"))
    EMAIL_QUOTA_RETRY_SECONDS = int(os.getenv("EMAIL_QUOTA_RETRY_SECONDS", "60"))
    EMAIL_BACKOFF_BASE_MS = int(os.getenv("EMAIL_BACKOFF_BASE_MS", "2000"))
    EMAIL_JOB_MAX_ATTEMPTS = int(os.getenv("EMAIL_JOB_MAX_ATTEMPTS", "3"))
    EMAIL_JOB_BATCH_LIMIT = int(os.getenv("EMAIL_JOB_BATCH_LIMIT", "10"))
    EMAIL_JOB_STALE_SECONDS = int(os.getenv("EMAIL_JOB_STALE_SECONDS", "600"))
    # "sweep": cron/beat picks jobs up; "celery": one task per job (with delayed redelivery)
    EMAIL_TRIGGER_BACKEND = os.getenv("EMAIL_TRIGGER_BACKEND", "sweep").lower()
    EMAIL_STATS_CACHE_SECONDS = int(os.getenv("EMAIL_STATS_CACHE_SECONDS", "60"))

    # --- Cache (statistics) ---
    CACHE_TYPE = os.getenv("CACHE_TYPE", "SimpleCache")
    CACHE_DEFAULT_TIMEOUT = 60
    CACHE_REDIS_URL = os.getenv("REDIS_URL")

    # --- Celery (event-driven trigger + periodic sweep) ---
    CELERY = {
        "broker_url": os.getenv("CELERY_BROKER_URL", os.getenv("REDIS_URL", "memory://")),
        "task_ignore_result": True,
        "beat_schedule": {
            "sweep-email-jobs": {
                "task": "email.process_jobs",
                "schedule": float(os.getenv("EMAIL_SWEEP_INTERVAL_SECONDS", "60")),
            },
        },
    }

class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    MAIL_SUPPRESS_SEND = True

class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "WARNING")
    # REQUIRE env vars in production (fail fast if missing); read lazily so importing
    # this module never crashes outside production.
    SECRET_KEY = os.environ.get("SECRET_KEY")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL")
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True
    SESSION_COOKIE_SAMESITE = os.environ.get("SESSION_COOKIE_SAMESITE", "Lax")
    MAIL_SUPPRESS_SEND = False
    CACHE_TYPE = os.getenv("CACHE_TYPE", "RedisCache")

class TestingConfig(BaseConfig):
    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite:///:memory:")
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    MAIL_SUPPRESS_SEND = True
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    CRON_SECRET = "test-cron-secret"
    EMAIL_TRIGGER_BACKEND = "sweep"
    CACHE_TYPE = "SimpleCache"
    CELERY = {
        "broker_url": "memory://",
        "task_ignore_result": True,
        "task_always_eager": True,
    }

_ENV_MAP = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}

def get_config():
    env = os.environ.get("APP_ENV", "development").lower()
    return _ENV_MAP.get(env, DevelopmentConfig)
