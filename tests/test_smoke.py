from collections import defaultdict
from datetime import datetime, timedelta

import pytest


@pytest.fixture()
def client(app, make_account):
    make_account(app, "admin", "all", role_name="Administrator")
    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200


def test_anonymous_redirected_to_login(client):
    r = client.get("/administration/roles/", follow_redirects=False)
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]
    assert "next=" in r.headers["Location"]


def test_login_and_admin_access(client, login):
    r = login(client, "admin")
    assert r.status_code == 302

    r = client.get("/administration/roles/")
    assert r.status_code == 200
    assert b"Administrator" in r.data

    r = client.get("/administration/accounts/")
    assert r.status_code == 200

    r = client.get("/administration/logs/")
    assert r.status_code == 200
    assert b"auth.login" in r.data


def test_login_is_case_insensitive_and_honours_next(client):
    r = client.post(
        "/auth/login",
        data={"username": "ADMIN", "password": "correct-horse-42", "next": "/administration/roles/"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/administration/roles/")


def test_login_rejects_external_next(client):
    r = client.post(
        "/auth/login",
        data={"username": "admin", "password": "correct-horse-42", "next": "//evil.example.com/"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert "evil.example.com" not in r.headers["Location"]


def test_wrong_password_stays_logged_out(client, login):
    r = login(client, "admin", "nope")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]

    r = client.get("/administration/roles/", follow_redirects=False)
    assert "/auth/login" in r.headers["Location"]


def test_login_rate_limited(client, login):
    for _ in range(5):
        login(client, "admin", "nope")
    r = login(client, "admin")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]

    r = client.get("/administration/roles/", follow_redirects=False)
    assert "/auth/login" in r.headers["Location"]


def test_logout(client, login):
    login(client, "admin")
    r = client.get("/auth/logout", follow_redirects=False)
    assert r.status_code == 302

    r = client.get("/administration/roles/", follow_redirects=False)
    assert "/auth/login" in r.headers["Location"]


def test_unknown_route_404(client, login):
    login(client, "admin")
    r = client.get("/no-such-page")
    assert r.status_code == 404


def test_production_settings_problems(monkeypatch):
    from app.gatehouse.config import Settings

    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///prod.db")
    monkeypatch.delenv("SECRET_KEY", raising=False)
    monkeypatch.delenv("AUTHORIZATION_ENABLED", raising=False)
    problems = Settings.from_env().problems()
    assert len(problems) == 2
    assert any("sqlite" in p for p in problems)
    assert any("SECRET_KEY" in p for p in problems)

    monkeypatch.setenv("ENV", "development")
    assert Settings.from_env().problems() == []


def test_expired_login_attempts_are_dropped(client, app, login):
    attempts = app.extensions.setdefault("login_attempts", defaultdict(list))
    attempts["10.0.0.9"].append(datetime.utcnow() - timedelta(hours=1))

    login(client, "admin", "nope")

    assert "10.0.0.9" not in app.extensions["login_attempts"]
