"""
Seed privileges, the Administrator role and the first admin account (idempotent).

Privileges are taken from the app's own routes, so run this after every deploy
that adds or removes views. An existing admin account's password is never
overwritten.

Usage:
  python scripts/init_db.py
"""

import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy import select

from app.gatehouse import create_app
from app.gatehouse.db import session_scope
from app.gatehouse.models import Account, Role, RolePrivilege
from app.gatehouse.privileges import sync_privileges
from app.gatehouse.rbac import bump_version
from app.gatehouse.security import hash_password

ADMIN_ROLE_NAME = "Administrator"


def seed_only(*, database_url: str | None = None) -> None:
    admin_username = (os.environ.get("ADMIN_USERNAME") or "admin").strip()
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@example.com").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    if database_url:
        os.environ["DATABASE_URL"] = database_url
    app = create_app()

    with session_scope(app) as s:
        privileges = sync_privileges(s, app)

        role = s.execute(select(Role).where(Role.name == ADMIN_ROLE_NAME)).scalar_one_or_none()
        if not role:
            role = Role(name=ADMIN_ROLE_NAME)
            s.add(role)
            s.flush()
        granted = {link.privilege_id for link in role.role_privileges}
        for p in privileges:
            if p.id not in granted:
                s.add(RolePrivilege(role_id=role.id, privilege_id=p.id))

        account = s.execute(select(Account).where(Account.username == admin_username)).scalar_one_or_none()
        if not account:
            account = Account(
                username=admin_username,
                email=admin_email,
                passhash=hash_password(admin_password),
                is_active=True,
            )
            s.add(account)
        if account.role_id is None:
            account.role = role
        bump_version(s)

    print(f"Initialized database (seed_only): {len(privileges)} privileges.")
    print(f"Admin username: {admin_username}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
