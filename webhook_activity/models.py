"""Data models for the webhook activity stream."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, PrivateAttr
from pydantic.alias_generators import to_camel


class ConnectionStatus(str, Enum):
    """Connection lifecycle states exposed to consumers."""

    UNINSTANTIATED = "Uninstantiated"
    CONNECTING = "Connecting"
    OPEN = "Open"
    CLOSING = "Closing"
    CLOSED = "Closed"


# Activity event models
#
# Events are built with model_construct() so field shapes are never validated:
# whatever the server sent is what consumers see. Absent fields default to None.

class ActivityEvent(BaseModel):
    """Base activity event. Every wire message carries a string ``type``."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    type: str

    _payload: Optional[Dict[str, Any]] = PrivateAttr(default=None)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ActivityEvent":
        """Build an event from a decoded wire object without validation.

        Wire keys are matched against field aliases only. Everything else is
        kept as an extra, including keys that look like model internals.
        """
        aliases = {field.alias or name: name for name, field in cls.model_fields.items()}
        values: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in payload.items():
            if key in aliases:
                values[aliases[key]] = value
            else:
                extra[key] = value

        event = cls.model_construct(set(values), **values)
        object.__setattr__(event, "__pydantic_extra__", extra)
        event._payload = dict(payload)
        return event

    def to_wire(self) -> Dict[str, Any]:
        """Return the event as it appeared on the wire (camelCase keys)."""
        if self._payload is not None:
            return dict(self._payload)
        data = self.model_dump(by_alias=True, warnings=False)
        for name, field in type(self).model_fields.items():
            if name not in self.model_fields_set:
                data.pop(field.alias or name, None)
        return data

    @property
    def is_delivery(self) -> bool:
        """Check if this event relates to a webhook delivery."""
        return isinstance(self, DeliveryEvent)


class InfoEvent(ActivityEvent):
    """Informational message from the server (e.g. connection greeting)."""

    type: str = "info"
    message: Optional[str] = None


class DeliveryEvent(ActivityEvent):
    """Fields shared by every delivery-related event."""

    delivery_id: Optional[str] = None
    webhook_id: Optional[str] = None
    event_id: Optional[str] = None


class DeliveryAttemptEvent(DeliveryEvent):
    """A delivery attempt is about to be made."""

    type: str = "delivery_attempt"
    event_type: Optional[str] = None
    url: Optional[str] = None
    attempt: Optional[int] = None


class DeliverySuccessEvent(DeliveryEvent):
    """The webhook endpoint accepted the delivery."""

    type: str = "delivery_success"
    status_code: Optional[int] = None
    response: Optional[Any] = None


class DeliveryFailedEvent(DeliveryEvent):
    """The webhook endpoint rejected the delivery."""

    type: str = "delivery_failed"
    status_code: Optional[int] = None
    response: Optional[Any] = None
    reason: Optional[str] = None


class DeliveryErrorEvent(DeliveryEvent):
    """The delivery could not be made (network error, timeout, ...)."""

    type: str = "delivery_error"
    error: Optional[str] = None


class UnknownActivityEvent(ActivityEvent):
    """Event with an unrecognised ``type``; all other fields pass through as extras."""


EVENT_TYPES: Dict[str, Type[ActivityEvent]] = {
    "info": InfoEvent,
    "delivery_attempt": DeliveryAttemptEvent,
    "delivery_success": DeliverySuccessEvent,
    "delivery_failed": DeliveryFailedEvent,
    "delivery_error": DeliveryErrorEvent,
}


@dataclass(frozen=True)
class StreamView:
    """Immutable point-in-time view handed to stream consumers."""

    status: ConnectionStatus = ConnectionStatus.UNINSTANTIATED
    history: Tuple[ActivityEvent, ...] = ()

    @property
    def latest(self) -> Optional[ActivityEvent]:
        """Most recent event, if any."""
        return self.history[0] if self.history else None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the view for JSON output."""
        return {
            "status": self.status.value,
            "history": [event.to_wire() for event in self.history],
        }
