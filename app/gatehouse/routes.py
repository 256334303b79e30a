from flask import Blueprint, render_template

from app.gatehouse.rbac import allow_anonymous, allow_unauthorized

bp = Blueprint("home", __name__)


@bp.get("/")
@allow_unauthorized
def index():
    return render_template("home/index.html")


@bp.get("/unauthorized")
@allow_unauthorized
def unauthorized():
    return render_template("home/unauthorized.html"), 403


@bp.get("/health")
@allow_anonymous
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
@allow_anonymous
def healthz():
    """Fast liveness probe. No DB access."""
    return "ok", 200
