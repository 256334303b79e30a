"""
Audit trail. Events are added to the caller's session and land with its
commit, so an audited change and its event are never split.
"""
from __future__ import annotations

import json
from typing import Any

from flask import g, has_request_context
from sqlalchemy.orm import Session

from app.gatehouse.models import Account, AuditEvent


def _current_request_id() -> str | None:
    return g.get("request_id") if has_request_context() else None


def record_event(
    s: Session,
    *,
    actor: Account | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    event = AuditEvent(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        request_id=request_id or _current_request_id(),
    )
    if actor is not None:
        # actor_username outlives the account row (the FK is SET NULL).
        event.actor_account_id = actor.id
        event.actor_username = actor.username
    if metadata:
        event.metadata_json = json.dumps(metadata, sort_keys=True, default=str)
    s.add(event)
    return event
