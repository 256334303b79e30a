"""
Display titles for privilege keys (areas, controllers, actions).

Keys are the blueprint / view names used in routing. Anything without an
explicit entry falls back to a humanised key, so new endpoints still render.
"""
from __future__ import annotations

ALL_PRIVILEGES_TITLE = "All"

AREA_TITLES = {
    "administration": "Administration",
}

CONTROLLER_TITLES = {
    "accounts": "Accounts",
    "roles": "Roles",
    "logs": "Audit logs",
    "home": "Home",
}

ACTION_TITLES = {
    "index": "View list",
    "details": "View details",
    "create": "Create",
    "edit": "Edit",
    "delete": "Delete",
}


def _humanize(key: str) -> str:
    return key.replace("_", " ").replace("-", " ").strip().title()


def area_title(key: str | None) -> str | None:
    if not key:
        return None
    return AREA_TITLES.get(key.lower(), _humanize(key))


def controller_title(key: str) -> str:
    return CONTROLLER_TITLES.get(key.lower(), _humanize(key))


def action_title(key: str) -> str:
    return ACTION_TITLES.get(key.lower(), _humanize(key))
