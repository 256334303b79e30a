from __future__ import annotations

from flask import Blueprint, abort, flash, g, render_template, request

from app.gatehouse.db import db_session
from app.gatehouse.modules.roles.service import RoleService, RoleView, parse_selected_ids, validate_role_payload
from app.gatehouse.modules.roles.tree import Tree
from app.gatehouse.rbac import authorize_as, get_provider, redirect_if_authorized

bp = Blueprint("roles", __name__)


def _service() -> RoleService:
    return RoleService(db_session(), get_provider(), actor=getattr(g, "current_account", None))


def _view_from_form(role_id: int | None = None) -> RoleView:
    return RoleView(
        id=role_id,
        name=(request.form.get("name") or "").strip(),
        privilege_tree=Tree(selected_ids=parse_selected_ids(request.form.getlist("selected_ids"))),
    )


# ---------- List ----------
@bp.get("/")
def index():
    roles = _service().get_views()
    return render_template("administration/roles/index.html", roles=roles)


# ---------- Details ----------
@bp.get("/<int:role_id>")
def details(role_id: int):
    role = _service().get_view(role_id)
    if role is None:
        abort(404)
    return render_template("administration/roles/details.html", role=role)


# ---------- Create ----------
@bp.get("/create")
def create():
    service = _service()
    role = RoleView()
    service.seed_privileges_tree(role)
    return render_template("administration/roles/create.html", role=role)


@bp.post("/create")
@authorize_as("create")
def create_post():
    s = db_session()
    service = _service()
    view = _view_from_form()

    errors = validate_role_payload(s, {"name": view.name, "selected_ids": view.privilege_tree.selected_ids})
    if errors:
        for e in errors:
            flash(e, "danger")
        service.seed_privileges_tree(view, view.privilege_tree.selected_ids)
        return render_template("administration/roles/create.html", role=view), 400

    service.create(view)
    flash(f"Role '{view.name}' created.", "success")
    return redirect_if_authorized("index")


# ---------- Edit ----------
@bp.get("/<int:role_id>/edit")
def edit(role_id: int):
    role = _service().get_view(role_id)
    if role is None:
        abort(404)
    return render_template("administration/roles/edit.html", role=role)


@bp.post("/<int:role_id>/edit")
@authorize_as("edit")
def edit_post(role_id: int):
    s = db_session()
    service = _service()
    if service.crud.get(role_id) is None:
        abort(404)
    view = _view_from_form(role_id)

    errors = validate_role_payload(
        s, {"name": view.name, "selected_ids": view.privilege_tree.selected_ids}, role_id=role_id
    )
    if errors:
        for e in errors:
            flash(e, "danger")
        service.seed_privileges_tree(view, view.privilege_tree.selected_ids)
        return render_template("administration/roles/edit.html", role=view), 400

    service.edit(view)
    flash(f"Role '{view.name}' updated.", "success")
    return redirect_if_authorized("index")


# ---------- Delete ----------
@bp.get("/<int:role_id>/delete")
def delete(role_id: int):
    role = _service().get_view(role_id)
    if role is None:
        abort(404)
    return render_template("administration/roles/delete.html", role=role)


@bp.post("/<int:role_id>/delete")
@authorize_as("delete")
def delete_post(role_id: int):
    service = _service()
    role = service.crud.get(role_id)
    if role is None:
        abort(404)
    name = role.name

    service.delete(role_id)
    flash(f"Role '{name}' deleted.", "success")
    return redirect_if_authorized("index")
