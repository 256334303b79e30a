"""
Role-based access control.

Privileges are (area, controller, action) triples resolved from Flask
endpoints: ``administration.roles.edit`` -> ("administration", "roles", "edit"),
``home.index`` -> (None, "home", "index").

The AuthorizationProvider keeps an immutable snapshot of account -> role and
role -> granted triples. Checks read whatever snapshot is current; refresh()
builds a new one and swaps it in, so readers never wait on a reload.
Writes that change grants bump a version row in the same transaction; every
process compares it before using its cached snapshot and reloads when stale.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from flask import Flask, current_app, g, redirect, request, url_for
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.gatehouse.models import Account, AuthorizationState, Privilege, RolePrivilege

logger = logging.getLogger(__name__)

Triple = tuple[str | None, str, str]

STATE_ROW_ID = 1


def normalize_triple(area: str | None, controller: str | None, action: str | None) -> Triple:
    return (
        (area or "").strip().lower() or None,
        (controller or "").strip().lower(),
        (action or "").strip().lower(),
    )


@dataclass(frozen=True)
class AuthorizationSnapshot:
    account_roles: Mapping[int, int]
    role_privileges: Mapping[int, frozenset[Triple]]
    version: int = 0

    @classmethod
    def empty(cls) -> "AuthorizationSnapshot":
        return cls(account_roles=MappingProxyType({}), role_privileges=MappingProxyType({}))

    def is_authorized_for(self, account_id: Any, area: str | None, controller: str, action: str) -> bool:
        role_id = self.account_roles.get(account_id)
        if role_id is None:
            return False
        granted = self.role_privileges.get(role_id, frozenset())
        return normalize_triple(area, controller, action) in granted


def current_version(s: Session) -> int:
    version = s.scalar(select(AuthorizationState.version).where(AuthorizationState.id == STATE_ROW_ID))
    return version or 0


def bump_version(s: Session) -> None:
    """Mark every process's snapshot stale. Lands with the caller's commit."""
    bumped = s.execute(
        update(AuthorizationState)
        .where(AuthorizationState.id == STATE_ROW_ID)
        .values(version=AuthorizationState.version + 1)
    )
    if bumped.rowcount == 0:
        s.add(AuthorizationState(id=STATE_ROW_ID, version=1))
        s.flush()


def load_snapshot(s: Session) -> AuthorizationSnapshot:
    # Read the version first: a write landing mid-load only makes the snapshot look older.
    version = current_version(s)
    account_roles = {
        account_id: role_id
        for account_id, role_id in s.execute(
            select(Account.id, Account.role_id).where(
                Account.is_active.is_(True),
                Account.role_id.isnot(None),
            )
        )
    }

    grants: dict[int, set[Triple]] = {}
    rows = s.execute(
        select(RolePrivilege.role_id, Privilege.area, Privilege.controller, Privilege.action).join(
            Privilege, Privilege.id == RolePrivilege.privilege_id
        )
    )
    for role_id, area, controller, action in rows:
        grants.setdefault(role_id, set()).add(normalize_triple(area, controller, action))

    return AuthorizationSnapshot(
        account_roles=MappingProxyType(account_roles),
        role_privileges=MappingProxyType({role_id: frozenset(triples) for role_id, triples in grants.items()}),
        version=version,
    )


class AuthorizationProvider:
    """Answers "may account X run action Y of controller Z in area A?"."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory
        self._snapshot: AuthorizationSnapshot | None = None
        self._refresh_lock = threading.Lock()

    @property
    def snapshot(self) -> AuthorizationSnapshot:
        """
        The cached snapshot, rebuilt when another process (or this one) has
        bumped the stored version since it was loaded.
        """
        snapshot = self._snapshot
        if snapshot is None or snapshot.version != self._stored_version():
            snapshot = self.refresh()
        return snapshot

    def _stored_version(self) -> int:
        s = self._session_factory()
        try:
            return current_version(s)
        finally:
            s.close()

    def refresh(self) -> AuthorizationSnapshot:
        """Reload role mappings from the database and swap in the new snapshot."""
        with self._refresh_lock:
            s = self._session_factory()
            try:
                snapshot = load_snapshot(s)
            finally:
                s.close()
            self._snapshot = snapshot
        logger.info(
            "Authorization snapshot refreshed (accounts=%s roles=%s)",
            len(snapshot.account_roles),
            len(snapshot.role_privileges),
        )
        return snapshot

    def is_authorized_for(self, account_id: Any, area: str | None, controller: str, action: str) -> bool:
        if account_id is None:
            return False
        return self.snapshot.is_authorized_for(account_id, area, controller, action)


def is_authorized_for(
    provider: AuthorizationProvider | None,
    account_id: Any,
    area: str | None,
    controller: str,
    action: str,
) -> bool:
    # No provider means authorization is switched off (AUTHORIZATION_ENABLED=0).
    if provider is None:
        return True
    return provider.is_authorized_for(account_id, area, controller, action)


def get_provider(app: Flask | None = None) -> AuthorizationProvider | None:
    app = app or current_app
    return app.extensions.get("authorization_provider")


def refresh_provider(provider: AuthorizationProvider | None) -> None:
    if provider is not None:
        provider.refresh()


# ---------- View markers ----------
def allow_anonymous(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Skip both login and privilege checks."""
    fn.allow_anonymous = True  # type: ignore[attr-defined]
    return fn


def allow_unauthorized(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Require a logged-in account but no privilege."""
    fn.allow_unauthorized = True  # type: ignore[attr-defined]
    return fn


def authorize_as(action: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Check this view against another action's privilege (e.g. POST handlers)."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        fn.authorize_as = action  # type: ignore[attr-defined]
        return fn

    return decorator


def is_exempt(view: Callable[..., Any] | None) -> bool:
    return view is None or getattr(view, "allow_anonymous", False) or getattr(view, "allow_unauthorized", False)


def endpoint_triple(endpoint: str, view: Callable[..., Any] | None = None) -> Triple:
    parts = endpoint.split(".")
    action = getattr(view, "authorize_as", None) or parts[-1]
    controller = parts[-2] if len(parts) >= 2 else ""
    area = parts[-3] if len(parts) >= 3 else None
    return normalize_triple(area, controller, action)


def current_triple(action: str | None = None) -> Triple:
    endpoint = request.endpoint or ""
    area, controller, current_action = endpoint_triple(endpoint, current_app.view_functions.get(endpoint))
    return normalize_triple(area, controller, action or current_action)


# ---------- Redirect helpers ----------
def redirect_to_default():
    return redirect(url_for("home.index"))


def redirect_to_unauthorized():
    return redirect(url_for("home.unauthorized"))


def current_account_is_authorized_for(action: str, controller: str | None = None, area: str | None = None) -> bool:
    account: Account | None = getattr(g, "current_account", None)
    if account is None:
        return False
    if controller is None:
        area, controller, _ = current_triple()
    return is_authorized_for(get_provider(), account.id, area, controller, action)


def redirect_if_authorized(action: str, **values: Any):
    """Redirect to another action of the current controller, or home when it is not allowed."""
    if current_account_is_authorized_for(action):
        return redirect(url_for(f"{request.blueprint}.{action}", **values))
    return redirect_to_default()


# ---------- Request gate ----------
def authorize_request():
    endpoint = request.endpoint
    if not endpoint or endpoint == "static" or endpoint.endswith(".static"):
        return None
    view = current_app.view_functions.get(endpoint)
    if view is None or getattr(view, "allow_anonymous", False):
        return None

    account: Account | None = getattr(g, "current_account", None)
    if account is None:
        nxt = request.full_path or request.path
        if nxt.endswith("?"):
            nxt = nxt[:-1]
        return redirect(url_for("auth.login_get", next=nxt))

    if getattr(view, "allow_unauthorized", False):
        return None

    area, controller, action = endpoint_triple(endpoint, view)
    if is_authorized_for(get_provider(), account.id, area, controller, action):
        return None

    current_app.logger.warning(
        "Unauthorized: account_id=%s privilege=%s/%s/%s request_id=%s",
        account.id,
        area,
        controller,
        action,
        getattr(g, "request_id", None),
    )
    return redirect_to_unauthorized()


def init_authorization(app: Flask) -> None:
    if app.config.get("AUTHORIZATION_ENABLED", True):
        app.extensions["authorization_provider"] = AuthorizationProvider(app.extensions["sqlalchemy_sessionmaker"])
    else:
        app.extensions["authorization_provider"] = None
        app.logger.warning("AUTHORIZATION_ENABLED=0: every logged-in account may run every action.")

    @app.context_processor
    def _inject_authorization() -> dict:
        return {"is_authorized_for": current_account_is_authorized_for}
