"""Event types pushed to the admin UI.

Learn: Two families of events travel through the real-time layer:

1. ChangeEvent — "record X of kind Y was created/updated/deleted".
   The frontend uses it to invalidate cached queries for that entity.
2. Message notifications — the manager inbox counter and "new inbound
   message" pings from the Telegram channel.

Every event exposes a `topic`. The event bus filters subscriptions by
topic, so a stream asking for {attendance} never sees invoice changes.

Wire format mirrors what the browser already parses: camelCase keys
and JavaScript-style ISO timestamps (milliseconds, trailing "Z").
"""

import copy
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(value: datetime) -> str:
    """Format a datetime the way JavaScript's Date.toISOString() does."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ─── Data changes ────────────────────────────────────────


class ChangeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class EntityKind(str, Enum):
    """Domain entities whose changes are broadcast."""

    SUBSCRIPTION = "subscription"
    ATTENDANCE = "attendance"
    INVOICE = "invoice"
    PAYMENT = "payment"
    CLIENT = "client"
    SCHEDULE = "schedule"
    GROUP = "group"
    MEDICAL_CERTIFICATE = "medicalCertificate"


class ChangeEvent(BaseModel):
    """One create/update/delete on a tracked entity.

    Frozen once built. `data` is a deep copy of the record taken at
    construction, so later edits to the caller's object never reach
    subscribers. It is None exactly when the change is a deletion.
    """

    model_config = ConfigDict(frozen=True)

    change: ChangeKind
    entity: EntityKind
    entity_id: str = Field(..., min_length=1)
    data: Any = None
    user_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("data")
    @classmethod
    def snapshot_data(cls, value: Any) -> Any:
        return copy.deepcopy(value)

    @model_validator(mode="after")
    def check_payload_matches_change(self):
        if self.change is ChangeKind.DELETED:
            if self.data is not None:
                raise ValueError("deleted events must not carry data")
        elif self.data is None:
            raise ValueError(f"{self.change.value} events require data")
        return self

    @property
    def topic(self) -> EntityKind:
        return self.entity

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.change.value,
            "entity": self.entity.value,
            "entityId": self.entity_id,
            "data": self.data,
        }
        if self.user_id is not None:
            payload["userId"] = self.user_id
        payload["timestamp"] = iso_timestamp(self.timestamp)
        return payload


# ─── Messaging ───────────────────────────────────────────


class UnreadCount(BaseModel):
    """Current number of inbound messages no manager has read yet."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["unread-count"] = "unread-count"
    count: int = Field(..., ge=0)

    @property
    def topic(self) -> str:
        return self.kind

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.kind, "count": self.count}


class NewMessage(BaseModel):
    """An inbound message arrived in a conversation."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["new-message"] = "new-message"
    conversation_id: str = Field(..., min_length=1)
    created_at: datetime

    @property
    def topic(self) -> str:
        return self.kind

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "conversationId": self.conversation_id,
            "createdAt": iso_timestamp(self.created_at),
        }


MessageNotification = Union[UnreadCount, NewMessage]
