from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.gatehouse.db import db_session
from app.gatehouse.models import Account, Role
from app.gatehouse.modules.accounts.service import (
    create_account,
    delete_account,
    edit_account,
    validate_account_edit,
    validate_account_payload,
)
from app.gatehouse.rbac import authorize_as, get_provider, redirect_if_authorized

bp = Blueprint("accounts", __name__)


def _current_account() -> Account:
    u = getattr(g, "current_account", None)
    if not u:
        raise RuntimeError("No current account")
    return u


def _roles():
    return db_session().query(Role).order_by(Role.name.asc()).all()


# ---------- List ----------
@bp.get("/")
def index():
    s = db_session()
    accounts = s.query(Account).order_by(Account.created_at.desc(), Account.id.desc()).all()
    return render_template("administration/accounts/index.html", accounts=accounts)


# ---------- Details ----------
@bp.get("/<int:account_id>")
def details(account_id: int):
    account = db_session().get(Account, account_id)
    if not account:
        abort(404)
    return render_template("administration/accounts/details.html", account=account)


# ---------- Create ----------
@bp.get("/create")
def create():
    return render_template("administration/accounts/create.html", roles=_roles(), form={})


@bp.post("/create")
@authorize_as("create")
def create_post():
    s = db_session()
    payload = {
        "username": request.form.get("username"),
        "email": request.form.get("email"),
        "password": request.form.get("password"),
        "password_confirm": request.form.get("password_confirm"),
        "role_id": request.form.get("role_id"),
    }

    errors = validate_account_payload(s, payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("administration/accounts/create.html", roles=_roles(), form=payload), 400

    account = create_account(s, payload, _current_account(), get_provider())
    flash(f"Account '{account.username}' created.", "success")
    return redirect_if_authorized("index")


# ---------- Edit (role and active flag) ----------
@bp.get("/<int:account_id>/edit")
def edit(account_id: int):
    account = db_session().get(Account, account_id)
    if not account:
        abort(404)
    return render_template("administration/accounts/edit.html", account=account, roles=_roles())


@bp.post("/<int:account_id>/edit")
@authorize_as("edit")
def edit_post(account_id: int):
    s = db_session()
    u = _current_account()
    account = s.get(Account, account_id)
    if not account:
        abort(404)

    if account.id == u.id:
        flash("You cannot modify your own account from this page.", "danger")
        return redirect(url_for("administration.accounts.edit", account_id=account_id))

    payload = {
        "role_id": request.form.get("role_id"),
        "is_active": "1" if request.form.get("is_active") else "0",
    }
    errors = validate_account_edit(s, payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("administration/accounts/edit.html", account=account, roles=_roles()), 400

    edit_account(s, account, payload, u, get_provider())
    flash(f"Account '{account.username}' updated.", "success")
    return redirect_if_authorized("details", account_id=account_id)


# ---------- Delete ----------
@bp.post("/<int:account_id>/delete")
def delete(account_id: int):
    s = db_session()
    u = _current_account()
    account = s.get(Account, account_id)
    if not account:
        abort(404)

    if account.id == u.id:
        flash("You cannot delete your own account from this page.", "danger")
        return redirect(url_for("administration.accounts.details", account_id=account_id))

    username = account.username
    delete_account(s, account, u, get_provider())
    flash(f"Account '{username}' deleted.", "success")
    return redirect_if_authorized("index")
