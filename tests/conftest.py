import pytest
from sqlalchemy import select

from app.gatehouse import create_app
from app.gatehouse.db import session_scope
from app.gatehouse.models import Account, Base, Privilege, Role, RolePrivilege
from app.gatehouse.privileges import sync_privileges
from app.gatehouse.rbac import bump_version
from app.gatehouse.security import hash_password

PASSWORD = "correct-horse-42"
ALL = "all"


@pytest.fixture()
def app_env(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("CSRF_ENABLED", "0")
    monkeypatch.delenv("AUTHORIZATION_ENABLED", raising=False)
    return monkeypatch


def _build_app():
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        sync_privileges(s, app)
    return app


@pytest.fixture()
def app(app_env):
    return _build_app()


@pytest.fixture()
def open_app(app_env):
    """App with authorization switched off (no provider)."""
    app_env.setenv("AUTHORIZATION_ENABLED", "0")
    return _build_app()


def _make_account(app, username, privileges=None, *, role_name=None, is_active=True) -> int:
    """
    Create an account. privileges=None leaves it without a role, ALL grants every
    privilege, otherwise a list of (area, controller, action) triples.
    """
    with session_scope(app) as s:
        role = None
        if privileges is not None:
            role = Role(name=role_name or f"{username}-role")
            s.add(role)
            s.flush()
            rows = s.scalars(select(Privilege)).all()
            if privileges != ALL:
                rows = [p for p in rows if p.triple in set(privileges)]
            for p in rows:
                s.add(RolePrivilege(role_id=role.id, privilege_id=p.id))
        account = Account(
            username=username,
            email=f"{username}@example.com",
            passhash=hash_password(PASSWORD),
            is_active=is_active,
            role=role,
        )
        s.add(account)
        s.flush()
        bump_version(s)
        return account.id


@pytest.fixture()
def make_account():
    return _make_account


@pytest.fixture()
def login():
    def _login(client, username, password=PASSWORD):
        return client.post("/auth/login", data={"username": username, "password": password}, follow_redirects=False)

    return _login
