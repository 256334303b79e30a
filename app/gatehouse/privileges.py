from __future__ import annotations

import logging

from flask import Flask
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.gatehouse.models import Privilege
from app.gatehouse.rbac import Triple, bump_version, endpoint_triple, is_exempt

logger = logging.getLogger(__name__)


def privilege_catalogue(app: Flask) -> list[Triple]:
    """Every (area, controller, action) the app's views are checked against, sorted."""
    triples: set[Triple] = set()
    for endpoint, view in app.view_functions.items():
        if endpoint == "static" or endpoint.endswith(".static") or "." not in endpoint:
            continue
        if is_exempt(view):
            continue
        triples.add(endpoint_triple(endpoint, view))
    return sorted(triples, key=lambda t: (t[0] or "", t[1], t[2]))


def sync_privileges(s: Session, app: Flask) -> list[Privilege]:
    """
    Make the privileges table match the app's routes (idempotent).
    Missing privileges are inserted; privileges with no matching view are removed
    (their role links go with them). Caller commits.
    """
    wanted = set(privilege_catalogue(app))
    existing = {p.triple: p for p in s.scalars(select(Privilege)).all()}

    added = []
    for area, controller, action in sorted(wanted - set(existing), key=lambda t: (t[0] or "", t[1], t[2])):
        p = Privilege(area=area, controller=controller, action=action)
        s.add(p)
        added.append(p)

    removed = [existing[t] for t in set(existing) - wanted]
    for p in removed:
        s.delete(p)

    s.flush()
    if added or removed:
        bump_version(s)
        logger.info("Privileges synced: added=%s removed=%s", len(added), len(removed))
    return list(s.scalars(select(Privilege).order_by(Privilege.id)).all())
