from flask import Blueprint, render_template, request

from app.gatehouse.db import db_session
from app.gatehouse.models import AuditEvent
from app.gatehouse.modules.accounts.admin import bp as accounts_bp
from app.gatehouse.modules.roles.admin import bp as roles_bp

# The "administration" area: every child blueprint is a controller inside it.
bp = Blueprint("administration", __name__)
logs_bp = Blueprint("logs", __name__)


@logs_bp.get("/")
def index():
    """
    Audit trail (last 200 events) with simple filters:
    - action (contains)
    - actor (username contains)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor = (request.args.get("actor") or "").strip()

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor:
        q = q.filter(AuditEvent.actor_username.ilike(f"%{actor}%"))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(200).all()
    return render_template("administration/logs/index.html", events=events, action=action, actor=actor)


bp.register_blueprint(roles_bp, url_prefix="/roles")
bp.register_blueprint(accounts_bp, url_prefix="/accounts")
bp.register_blueprint(logs_bp, url_prefix="/logs")
