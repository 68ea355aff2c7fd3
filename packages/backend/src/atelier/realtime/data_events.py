"""Data-change channel — tells the admin UI which records changed.

Learn: Write paths (marking attendance, recording a payment, ...) call
emit_created / emit_updated / emit_deleted after their database commit.
The browser subscribes with an optional entity filter and invalidates
its cached queries for whatever entity comes through.

Usage:
    data_events.emit_updated(EntityKind.ATTENDANCE, attendance.id,
                             {"status": "PRESENT"}, user_id=user.id)
"""

from collections.abc import Iterable
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from atelier.events.types import ChangeEvent, ChangeKind, EntityKind
from atelier.realtime.frames import data_change_frame
from atelier.realtime.gateway import SseGateway, SseStream

logger = structlog.get_logger()


class UnknownEntityError(ValueError):
    """Raised when a stream request names an entity kind we don't track."""

    def __init__(self, names: list[str]):
        self.names = names
        known = ", ".join(kind.value for kind in EntityKind)
        super().__init__(
            f"Unknown entity kind(s): {', '.join(names)}. Expected any of: {known}"
        )


def parse_entities(raw: Optional[str]) -> Optional[frozenset[EntityKind]]:
    """Parse the `entities` query parameter ("attendance,invoice").

    Returns None (meaning every kind) for a missing or blank value.
    """
    if not raw:
        return None
    names = [name.strip() for name in raw.split(",") if name.strip()]
    if not names:
        return None

    kinds, unknown = set(), []
    for name in names:
        try:
            kinds.add(EntityKind(name))
        except ValueError:
            unknown.append(name)
    if unknown:
        raise UnknownEntityError(unknown)
    return frozenset(kinds)


class DataEventsGateway(SseGateway[ChangeEvent]):
    """SSE channel for create/update/delete notifications."""

    def open_stream(
        self, entities: Optional[Iterable[EntityKind]] = None
    ) -> SseStream[ChangeEvent]:
        """Stream of data-change frames, optionally limited to `entities`."""
        subscription = self.bus.subscribe(entities)
        return self._open_stream(subscription, data_change_frame)

    def emit_created(
        self,
        entity: EntityKind,
        entity_id: str,
        data: Any,
        user_id: Optional[str] = None,
    ) -> None:
        self._emit_change(ChangeKind.CREATED, entity, entity_id, data, user_id)

    def emit_updated(
        self,
        entity: EntityKind,
        entity_id: str,
        data: Any,
        user_id: Optional[str] = None,
    ) -> None:
        self._emit_change(ChangeKind.UPDATED, entity, entity_id, data, user_id)

    def emit_deleted(
        self,
        entity: EntityKind,
        entity_id: str,
        user_id: Optional[str] = None,
    ) -> None:
        self._emit_change(ChangeKind.DELETED, entity, entity_id, None, user_id)

    def _emit_change(
        self,
        change: ChangeKind,
        entity: EntityKind,
        entity_id: str,
        data: Any,
        user_id: Optional[str],
    ) -> None:
        try:
            event = ChangeEvent(
                change=change,
                entity=entity,
                entity_id=entity_id,
                data=data,
                user_id=user_id,
            )
        except ValidationError as e:
            # Dropped, never raised: the write path has already committed
            logger.warning(
                "data_events.invalid_event",
                change=change.value,
                entity=getattr(entity, "value", entity),
                entity_id=entity_id,
                error=str(e),
            )
            return

        logger.debug(
            "data_events.emit",
            change=event.change.value,
            entity=event.entity.value,
            entity_id=event.entity_id,
            subscribers=self.bus.subscriber_count,
        )
        self.emit(event)
