from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for

from app.gatehouse.audit import record_event
from app.gatehouse.db import db_session
from app.gatehouse.models import Account
from app.gatehouse.modules.accounts.service import find_by_username
from app.gatehouse.rbac import allow_anonymous
from app.gatehouse.security import verify_password

bp = Blueprint("auth", __name__)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _login_attempts() -> dict[str, list[datetime]]:
    # Per app, so separate app instances (and tests) do not share counters.
    return current_app.extensions.setdefault("login_attempts", defaultdict(list))


def _check_rate_limit(ip: str) -> bool:
    attempts = _login_attempts()
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    for key in list(attempts):
        attempts[key] = [t for t in attempts[key] if t > cutoff]
        if not attempts[key]:
            del attempts[key]
    return len(attempts.get(ip, ())) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts()[ip].append(datetime.utcnow())


def load_current_account() -> None:
    """
    Loads g.current_account from the signed session cookie.
    Also assigns a per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_account = None
    if request.endpoint == "static":
        return

    account_id = session.get("account_id")
    if not account_id:
        return

    s = db_session()
    account = s.get(Account, int(account_id))
    if not account or not account.is_active:
        session.pop("account_id", None)
        return
    g.current_account = account


@bp.get("/login")
@allow_anonymous
def login_get():
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/login")
@allow_anonymous
def login_post():
    username = (request.form.get("username") or "").strip()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))

    _record_attempt(ip)

    s = db_session()
    account = find_by_username(s, username)
    if not account or not account.is_active or not verify_password(account.passhash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="Account",
            entity_id=username,
            metadata={"username": username},
        )
        s.commit()
        current_app.logger.info("Login failed (username=%s request_id=%s)", username, g.request_id)
        flash("Invalid username or password.", "danger")
        return redirect(url_for("auth.login_get", next=nxt or None))

    session.clear()
    session["account_id"] = account.id
    _login_attempts().pop(ip, None)
    record_event(s, actor=account, action="auth.login", entity_type="Account", entity_id=str(account.id))
    s.commit()
    # Only local paths, to avoid open redirects.
    if nxt.startswith("/") and not nxt.startswith("//"):
        return redirect(nxt)
    return redirect(url_for("home.index"))


@bp.get("/logout")
@allow_anonymous
def logout():
    account = getattr(g, "current_account", None)
    if account:
        s = db_session()
        record_event(s, actor=account, action="auth.logout", entity_type="Account", entity_id=str(account.id))
        s.commit()
    session.pop("account_id", None)
    return redirect(url_for("auth.login_get"))
