import secrets

from flask import Request, current_app, g, render_template, request, session
from werkzeug.security import check_password_hash, generate_password_hash

MIN_PASSWORD_LENGTH = 8
CSRF_SESSION_KEY = "csrf_token"
UNSAFE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
# Endpoints whose unsafe requests skip the token check.
CSRF_EXEMPT_PREFIXES = ("auth.", "home.health")


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(passhash: str | None, password: str) -> bool:
    return bool(passhash) and check_password_hash(passhash, password)


def ensure_csrf_token() -> str:
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = session[CSRF_SESSION_KEY] = secrets.token_urlsafe(32)
    return token


def validate_csrf(req: Request) -> bool:
    """Compare the form field (or X-CSRF-Token header) with the session token."""
    sent = req.form.get("csrf_token") or req.headers.get("X-CSRF-Token")
    expected = session.get(CSRF_SESSION_KEY)
    return bool(sent and expected) and secrets.compare_digest(sent, expected)


def csrf_protect():
    """before_request hook: reject unsafe requests that lack a valid token."""
    endpoint = request.endpoint or ""
    if not endpoint or endpoint == "static" or endpoint.startswith(CSRF_EXEMPT_PREFIXES):
        return None
    ensure_csrf_token()
    session.permanent = True
    if request.method not in UNSAFE_METHODS or not current_app.config.get("CSRF_ENABLED", True):
        return None
    if validate_csrf(request):
        return None
    current_app.logger.warning(
        "CSRF check failed (endpoint=%s request_id=%s)", endpoint, getattr(g, "request_id", None)
    )
    return render_template("errors/400.html", message="CSRF token missing or invalid."), 400
