from __future__ import annotations

import re
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from app.gatehouse.audit import record_event
from app.gatehouse.models import Account, Role
from app.gatehouse.rbac import bump_version, refresh_provider
from app.gatehouse.security import MIN_PASSWORD_LENGTH, hash_password

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.gatehouse.rbac import AuthorizationProvider

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]{3,64}$")


def find_by_username(s: "Session", username: str) -> Account | None:
    """Case-insensitive lookup used by login and validation."""
    username = (username or "").strip()
    if not username:
        return None
    return s.execute(select(Account).where(func.lower(Account.username) == username.lower())).scalar_one_or_none()


def _parse_role_id(raw) -> int | None:
    raw = (str(raw) if raw is not None else "").strip()
    return int(raw) if raw.isdigit() else None


def validate_account_payload(s: "Session", payload: dict) -> list[str]:
    """Validate account creation payload. Returns list of errors."""
    errors = []
    username = (payload.get("username") or "").strip()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    password_confirm = payload.get("password_confirm") or ""

    if not username:
        errors.append("Username is required.")
    elif not USERNAME_PATTERN.match(username):
        errors.append("Username must be 3-64 letters, digits, dots, dashes or underscores.")
    elif find_by_username(s, username):
        errors.append("Username is already taken.")

    if not email:
        errors.append("Email is required.")
    elif not EMAIL_PATTERN.match(email):
        errors.append("Invalid email format.")
    elif s.execute(select(Account.id).where(Account.email == email)).first() is not None:
        errors.append("An account with this email already exists.")

    if not password:
        errors.append("Password is required.")
    elif len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    elif password != password_confirm:
        errors.append("Passwords do not match.")

    errors.extend(validate_account_edit(s, payload))
    return errors


def validate_account_edit(s: "Session", payload: dict) -> list[str]:
    errors = []
    role_id = _parse_role_id(payload.get("role_id"))
    if role_id is not None and s.get(Role, role_id) is None:
        errors.append("Selected role does not exist.")
    return errors


def create_account(
    s: "Session",
    payload: dict,
    actor: Account | None,
    provider: "AuthorizationProvider | None" = None,
) -> Account:
    """Create an account and commit."""
    account = Account(
        username=(payload.get("username") or "").strip(),
        email=(payload.get("email") or "").strip().lower(),
        passhash=hash_password(payload.get("password") or ""),
        is_active=True,
        role_id=_parse_role_id(payload.get("role_id")),
    )
    s.add(account)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="account.create",
        entity_type="Account",
        entity_id=str(account.id),
        metadata={"username": account.username, "email": account.email, "role_id": account.role_id},
    )
    bump_version(s)
    s.commit()
    refresh_provider(provider)
    return account


def edit_account(
    s: "Session",
    account: Account,
    payload: dict,
    actor: Account | None,
    provider: "AuthorizationProvider | None" = None,
) -> Account:
    """Change an account's role and active flag only, then commit."""
    before = {"role_id": account.role_id, "is_active": account.is_active}

    role_id = _parse_role_id(payload.get("role_id"))
    account.role = s.get(Role, role_id) if role_id is not None else None
    if "is_active" in payload:
        account.is_active = str(payload.get("is_active")) in ("1", "true", "on")

    after = {"role_id": account.role.id if account.role else None, "is_active": account.is_active}
    record_event(
        s,
        actor=actor,
        action="account.edit",
        entity_type="Account",
        entity_id=str(account.id),
        metadata={"before": before, "after": after},
    )
    bump_version(s)
    s.commit()
    refresh_provider(provider)
    return account


def delete_account(
    s: "Session",
    account: Account,
    actor: Account | None,
    provider: "AuthorizationProvider | None" = None,
) -> None:
    record_event(
        s,
        actor=actor,
        action="account.delete",
        entity_type="Account",
        entity_id=str(account.id),
        metadata={"username": account.username},
    )
    s.delete(account)
    bump_version(s)
    s.commit()
    refresh_provider(provider)
