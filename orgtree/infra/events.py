from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable

from sqlmodel import Session

from orgtree.domain.models import EventEnvelope, EventRecord

EventHandler = Callable[[EventEnvelope], None]


class EventBus:
    """In-process fan-out for entity change events.

    ``publish`` records the event in the caller's session, so the row commits or
    rolls back together with the change it describes, then calls subscribers
    registered for the event type and for ``"*"``.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._subscribers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        if event_type in self._subscribers and handler in self._subscribers[event_type]:
            self._subscribers[event_type].remove(handler)

    def publish(self, event: EventEnvelope, session: Session) -> None:
        session.add(
            EventRecord(
                event_id=event.event_id,
                event_type=event.event_type,
                organization_id=event.organization_id,
                ts=event.ts,
                actor_id=event.actor_id,
                payload=event.payload,
            )
        )

        handlers = [*self._subscribers.get(event.event_type, []), *self._subscribers.get("*", [])]
        for handler in handlers:
            handler(event)


event_bus = EventBus()
