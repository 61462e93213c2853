from __future__ import annotations

from typing import Any

from sqlmodel import Session

from orgtree.domain.models import Actor, AuditLog


def write_audit_log(
    *,
    organization_id: str | None,
    actor: Actor | None,
    action: str,
    entity_type: str,
    entity_id: str | None,
    session: Session,
    snapshot: dict[str, Any] | None = None,
) -> AuditLog:
    """Stage an audit row in ``session``; the caller owns the commit."""
    log = AuditLog(
        organization_id=organization_id,
        actor_id=actor.id if actor is not None else None,
        actor_name=actor.name if actor is not None else "System",
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        snapshot=snapshot or {},
    )
    session.add(log)
    return log
