from __future__ import annotations

import json
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.scholartrack.models import AuditEvent, User


def _request_meta() -> tuple[str | None, str | None]:
    if not has_request_context():
        return None, None
    return getattr(g, "request_id", None), request.remote_addr


def apply_changes(obj: Any, values: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Set attributes on `obj`; returns {attr: {"old", "new"}} for the ones that changed."""
    changes: dict[str, dict[str, Any]] = {}
    for attr, new in values.items():
        old = getattr(obj, attr)
        if old != new:
            changes[attr] = {"old": old, "new": new}
            setattr(obj, attr, new)
    return changes


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditEvent:
    """
    Append an audit event to the session. The caller commits, so the event lands in
    the same transaction as the change it describes.
    """
    request_id, client_ip = _request_meta()
    ev = AuditEvent(
        request_id=request_id,
        actor_user_id=actor.id if actor else None,
        actor_user_email=actor.email if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
        client_ip=client_ip,
    )
    s.add(ev)
    return ev
