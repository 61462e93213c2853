from __future__ import annotations

from typing import Any, Protocol

from pydantic import BaseModel
from sqlmodel import Session

from orgtree.domain.models import Actor, EventEnvelope
from orgtree.infra.audit import write_audit_log
from orgtree.infra.events import EventBus, event_bus


class Notifier(Protocol):
    def notify_created(
        self,
        session: Session,
        organization_id: str,
        entity_type: str,
        entity: BaseModel,
        actor: Actor,
    ) -> None: ...

    def notify_updated(
        self,
        session: Session,
        organization_id: str,
        entity_type: str,
        entity: BaseModel,
        actor: Actor,
    ) -> None: ...

    def notify_deleted(
        self,
        session: Session,
        organization_id: str,
        entity_type: str,
        entity: BaseModel,
        actor: Actor,
    ) -> None: ...


class ChangeNotifier:
    """Writes one audit row and publishes one event per changed entity."""

    def __init__(self, bus: EventBus | None = None) -> None:
        self._bus = bus or event_bus

    def notify_created(
        self,
        session: Session,
        organization_id: str,
        entity_type: str,
        entity: BaseModel,
        actor: Actor,
    ) -> None:
        self._notify(session, organization_id, entity_type, "created", entity, actor)

    def notify_updated(
        self,
        session: Session,
        organization_id: str,
        entity_type: str,
        entity: BaseModel,
        actor: Actor,
    ) -> None:
        self._notify(session, organization_id, entity_type, "updated", entity, actor)

    def notify_deleted(
        self,
        session: Session,
        organization_id: str,
        entity_type: str,
        entity: BaseModel,
        actor: Actor,
    ) -> None:
        self._notify(session, organization_id, entity_type, "deleted", entity, actor)

    def _notify(
        self,
        session: Session,
        organization_id: str,
        entity_type: str,
        action: str,
        entity: BaseModel,
        actor: Actor,
    ) -> None:
        data: dict[str, Any] = entity.model_dump(mode="json")
        write_audit_log(
            organization_id=organization_id,
            actor=actor,
            action=action,
            entity_type=entity_type,
            entity_id=data.get("id"),
            snapshot=data,
            session=session,
        )
        self._bus.publish(
            EventEnvelope(
                event_type=f"{entity_type}.{action}",
                organization_id=organization_id,
                actor_id=actor.id,
                payload={
                    "type": entity_type,
                    "action": action,
                    "data": data,
                    "meta": {"actor_id": actor.id, "actor_name": actor.name},
                },
            ),
            session=session,
        )
