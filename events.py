"""
Change events for shifts, users and notifications.

Repositories describe every write as a raw mapping
``{'entity': ..., 'kind': ..., 'payload': {...}}``.  The bus decodes it into
one of the typed event models below before any subscriber sees it, so
listeners never handle unvalidated dictionaries.
"""

import logging
from datetime import date as calendar_date
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as SchemaError

from constants import OnCallRole, ShiftStatus
from exceptions import EventDecodeError

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class ShiftPayload(BaseModel):
    id: int
    date: calendar_date
    assignee_id: int
    role: OnCallRole
    status: ShiftStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserPayload(BaseModel):
    id: int
    username: str
    comp_offs: int = Field(0, ge=0)
    first_name: str = ""
    last_name: str = ""
    role: Optional[str] = None
    active: bool = True


class NotificationPayload(BaseModel):
    id: int
    assignee_id: int
    type: str
    title: str
    message: str
    read: bool = False
    related_id: Optional[str] = None


class ShiftChange(BaseModel):
    entity: Literal["shift"]
    kind: ChangeKind
    payload: ShiftPayload
    occurred_at: datetime = Field(default_factory=datetime.utcnow)


class UserChange(BaseModel):
    entity: Literal["user"]
    kind: ChangeKind
    payload: UserPayload
    occurred_at: datetime = Field(default_factory=datetime.utcnow)


class NotificationChange(BaseModel):
    entity: Literal["notification"]
    kind: ChangeKind
    payload: NotificationPayload
    occurred_at: datetime = Field(default_factory=datetime.utcnow)


ChangeEvent = Annotated[
    Union[ShiftChange, UserChange, NotificationChange],
    Field(discriminator="entity"),
]

_event_adapter = TypeAdapter(ChangeEvent)


def decode_event(raw: Dict[str, Any]):
    """Validate a raw change mapping and return the typed event."""
    try:
        return _event_adapter.validate_python(raw)
    except SchemaError as e:
        raise EventDecodeError(f"Invalid change event: {e}") from e


Subscriber = Callable[[Any], None]


class EventBus:
    """In-process publish/subscribe channel for change events."""

    def __init__(self):
        self._subscribers: List[tuple] = []

    def subscribe(self, callback: Subscriber, entity: Optional[str] = None) -> Callable[[], None]:
        """
        Register a callback for all events, or only those of one entity.
        Returns a function that removes the subscription.
        """
        entry = (entity, callback)
        self._subscribers.append(entry)

        def unsubscribe():
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def publish(self, raw):
        event = raw if isinstance(raw, (ShiftChange, UserChange, NotificationChange)) else decode_event(raw)
        for entity, callback in list(self._subscribers):
            if entity is not None and entity != event.entity:
                continue
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Change subscriber {getattr(callback, '__name__', callback)} failed: {e}")
        return event

    def emit(self, entity: str, kind: ChangeKind, payload: Dict[str, Any]):
        return self.publish({"entity": entity, "kind": kind, "payload": payload})
