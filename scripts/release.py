"""
Release phase: migrate the schema to head, then seed privileges and the admin.

Requires DATABASE_URL; refuses SQLite when ENV=production.

Usage:
  python scripts/release.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from alembic import command
from alembic.config import Config


def database_url_from_env() -> str:
    url = (os.environ.get("DATABASE_URL") or "").strip()
    if not url:
        raise RuntimeError("Missing required environment variable DATABASE_URL.")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and url.startswith("sqlite"):
        raise RuntimeError("Refusing to release onto sqlite in production; point DATABASE_URL at Postgres.")
    return url


def alembic_config(db_url: str) -> Config:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    # ConfigParser interpolation
    cfg.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))
    return cfg


def run_release() -> None:
    db_url = database_url_from_env()

    print("=== Gatehouse release ===", flush=True)
    print("Upgrading schema to head...", flush=True)
    command.upgrade(alembic_config(db_url), "head")

    print("Syncing privileges and admin account...", flush=True)
    from scripts.init_db import seed_only

    seed_only(database_url=db_url)
    print("=== Release done ===", flush=True)


if __name__ == "__main__":
    run_release()
