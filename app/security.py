from flask_talisman import Talisman

def init_security(app):
    """
    Production/staging security headers. The app serves JSON and emails only,
    so the CSP can stay closed.
    """
    csp = {
        "default-src": ["'self'"],
        "img-src":     ["'self'", "data:"],
        "frame-ancestors": ["'none'"],
        "base-uri":    ["'self'"],
        "form-action": ["'self'"],
    }

    Talisman(
        app,
        content_security_policy=csp,
        force_https=True,
        strict_transport_security=True,
        session_cookie_secure=True,
        frame_options="DENY",
        referrer_policy="strict-origin-when-cross-origin",
    )
