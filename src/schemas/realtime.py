"""Row-level change notifications delivered on a realtime channel."""
from enum import StrEnum
from typing import Any

from pydantic import BaseModel


class ChangeEventType(StrEnum):
    """Database operation that produced a change notification."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """A single change notification for one row."""

    event_type: ChangeEventType
    new: dict[str, Any] = {}
    old: dict[str, Any] = {}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ChangeEvent | None":
        """
        Build an event from a raw realtime payload.

        Two payload shapes are accepted:
        - the wire shape, ``{"data": {"type", "record", "old_record"}, "ids": [...]}``
        - the client-normalized shape, ``{"eventType", "new", "old"}``

        Returns:
            The parsed event, or None for event types this app does not handle.
        """
        data = payload.get("data")
        if isinstance(data, dict):
            event_type = data.get("type")
            new = data.get("record")
            old = data.get("old_record")
        else:
            event_type = payload.get("eventType") or payload.get("type")
            new = payload.get("new")
            old = payload.get("old")

        try:
            parsed_type = ChangeEventType(str(event_type).upper())
        except ValueError:
            return None
        return cls(event_type=parsed_type, new=new or {}, old=old or {})
