from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from app.gatehouse.audit import record_event
from app.gatehouse.crud import CrudService, UnitOfWork, ViewMapper
from app.gatehouse.models import Account, Privilege, Role, RolePrivilege
from app.gatehouse.modules.roles.tree import TitleLookup, Tree, build_privilege_tree
from app.gatehouse.rbac import bump_version, refresh_provider

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.gatehouse.rbac import AuthorizationProvider

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 128


@dataclass
class RoleView:
    id: int | None = None
    name: str = ""
    privilege_tree: Tree = field(default_factory=Tree)


def role_to_view(role: Role) -> RoleView:
    return RoleView(id=role.id, name=role.name)


def role_to_model(view: RoleView, role: Role | None) -> Role:
    role = role or Role()
    role.name = view.name.strip()
    return role


def parse_selected_ids(raw: Iterable[str]) -> list[int]:
    """Checkbox values -> unique privilege ids, submission order kept."""
    ids: list[int] = []
    for value in raw:
        value = (value or "").strip()
        if value.isdigit() and int(value) not in ids:
            ids.append(int(value))
    return ids


def _bump_authorization(uow: UnitOfWork, role: Role, view: RoleView | None = None) -> None:
    bump_version(uow.s)


def validate_role_payload(s: "Session", payload: dict, role_id: int | None = None) -> list[str]:
    """Validate role creation/update payload. Returns list of errors."""
    errors = []
    name = (payload.get("name") or "").strip()
    if not name:
        errors.append("Name is required.")
    elif len(name) > MAX_NAME_LENGTH:
        errors.append(f"Name must be at most {MAX_NAME_LENGTH} characters.")
    else:
        q = select(Role.id).where(func.lower(Role.name) == name.lower())
        if role_id is not None:
            q = q.where(Role.id != role_id)
        if s.execute(q).first() is not None:
            errors.append("A role with this name already exists.")

    selected_ids = set(payload.get("selected_ids") or ())
    if selected_ids:
        known = set(s.scalars(select(Privilege.id).where(Privilege.id.in_(selected_ids))))
        if selected_ids - known:
            errors.append("Unknown privilege selected.")
    return errors


class RoleService:
    """
    Role administration. Every write replaces the role's privilege links in the
    same transaction as the role row, then refreshes the authorization provider.
    """

    def __init__(
        self,
        s: "Session",
        provider: "AuthorizationProvider | None" = None,
        *,
        actor: Account | None = None,
        lookup: TitleLookup | None = None,
    ) -> None:
        self.uow = UnitOfWork(s)
        self.provider = provider
        self.actor = actor
        self.lookup = lookup
        self.crud: CrudService[Role, RoleView] = CrudService(
            self.uow,
            Role,
            ViewMapper(to_view=role_to_view, to_model=role_to_model),
            on_create=(self._create_role_privileges, self._record("role.create"), _bump_authorization),
            on_edit=(
                self._delete_role_privileges,
                self._create_role_privileges,
                self._record("role.edit"),
                _bump_authorization,
            ),
            before_delete=(self._remove_role_from_accounts, self._record_delete, _bump_authorization),
            order_by=Role.name.asc(),
        )

    # ---------- Queries ----------
    def get_views(self) -> list[RoleView]:
        return self.crud.get_views()

    def get_view(self, role_id: int) -> RoleView | None:
        view = self.crud.get_view(role_id)
        if view is not None:
            self.seed_privileges_tree(view)
        return view

    def granted_privilege_ids(self, role_id: int) -> list[int]:
        links = self.uow.repository(RolePrivilege).query(RolePrivilege.role_id == role_id, order_by=RolePrivilege.id)
        return [link.privilege_id for link in links]

    def seed_privileges_tree(self, view: RoleView, selected_ids: Iterable[int] | None = None) -> Tree:
        if selected_ids is None:
            selected_ids = self.granted_privilege_ids(view.id) if view.id is not None else []
        privileges = self.uow.repository(Privilege).query(order_by=Privilege.id)
        view.privilege_tree = build_privilege_tree(privileges, selected_ids, self.lookup)
        return view.privilege_tree

    # ---------- Commands ----------
    def create(self, view: RoleView) -> Role:
        role = self.crud.create(view)
        view.id = role.id
        logger.info("Role created: id=%s name=%s privileges=%s", role.id, role.name, len(view.privilege_tree.selected_ids))
        refresh_provider(self.provider)
        return role

    def edit(self, view: RoleView) -> Role:
        role = self.crud.edit(view)
        logger.info("Role edited: id=%s name=%s privileges=%s", role.id, role.name, len(view.privilege_tree.selected_ids))
        refresh_provider(self.provider)
        return role

    def delete(self, role_id: int) -> None:
        self.crud.delete(role_id)
        logger.info("Role deleted: id=%s", role_id)
        refresh_provider(self.provider)

    # ---------- Hooks (run inside the write transaction) ----------
    def _create_role_privileges(self, uow: UnitOfWork, role: Role, view: RoleView) -> None:
        links = uow.repository(RolePrivilege)
        for privilege_id in dict.fromkeys(view.privilege_tree.selected_ids):
            links.insert(RolePrivilege(role_id=role.id, privilege_id=privilege_id))
        uow.flush()
        uow.s.expire(role, ["role_privileges"])

    def _delete_role_privileges(self, uow: UnitOfWork, role: Role, view: RoleView) -> None:
        links = uow.repository(RolePrivilege)
        for link in links.query(RolePrivilege.role_id == role.id):
            links.delete(link.id)
        # Deletes must hit the database before re-inserting the same (role, privilege) pairs.
        uow.flush()

    def _remove_role_from_accounts(self, uow: UnitOfWork, role: Role) -> None:
        accounts = uow.repository(Account)
        for account in accounts.query(Account.role_id == role.id):
            account.role = None
            accounts.update(account)

    def _record(self, action: str):
        def hook(uow: UnitOfWork, role: Role, view: RoleView) -> None:
            record_event(
                uow.s,
                actor=self.actor,
                action=action,
                entity_type="Role",
                entity_id=str(role.id),
                metadata={"name": role.name, "privilege_ids": sorted(set(view.privilege_tree.selected_ids))},
            )

        return hook

    def _record_delete(self, uow: UnitOfWork, role: Role) -> None:
        record_event(
            uow.s,
            actor=self.actor,
            action="role.delete",
            entity_type="Role",
            entity_id=str(role.id),
            metadata={"name": role.name},
        )
