"""Classify and decode inbound activity stream messages."""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from webhook_activity.models import EVENT_TYPES, ActivityEvent, UnknownActivityEvent

logger = logging.getLogger(__name__)

RawMessage = Union[str, bytes, bytearray]


@dataclass
class DecodeStats:
    """Running counters for decoded and discarded messages."""

    accepted: int = 0
    discarded: int = 0
    unknown_type: int = 0


class EventDecoder:
    """Turns raw text frames into typed activity events.

    Malformed frames are logged and dropped. They never count as connection
    errors and there is no rate limit on how many are attempted.
    """

    def __init__(self):
        """Initialize decoder."""
        self.stats = DecodeStats()

    def decode(self, raw: RawMessage) -> Optional[ActivityEvent]:
        """
        Decode a single raw message.

        Args:
            raw: Text frame (bytes frames are decoded as UTF-8)

        Returns:
            The decoded event, or None if the message was discarded
        """
        payload = self._parse(raw)
        if payload is None:
            self.stats.discarded += 1
            return None

        message_type = payload["type"]
        event_cls = EVENT_TYPES.get(message_type)
        if event_cls is None:
            logger.debug("Passing through unknown activity type: %s", message_type)
            self.stats.unknown_type += 1
            event_cls = UnknownActivityEvent

        self.stats.accepted += 1
        return event_cls.from_payload(payload)

    def _parse(self, raw: RawMessage) -> Optional[dict]:
        """Parse JSON and check the discriminant; None means discard."""
        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                logger.warning("Discarding non UTF-8 activity message: %s", e)
                return None

        try:
            payload: Any = json.loads(raw)
        except (ValueError, RecursionError, TypeError) as e:
            # ValueError covers JSONDecodeError and oversized integer literals
            logger.warning("Failed to parse activity message as JSON: %s", e)
            logger.debug("Raw data was: %r", raw)
            return None

        if not isinstance(payload, dict) or not isinstance(payload.get("type"), str):
            logger.warning("Received activity message with invalid format: %r", raw)
            return None

        return payload


def decode_message(raw: RawMessage) -> Optional[ActivityEvent]:
    """Decode one message with a throwaway decoder."""
    return EventDecoder().decode(raw)
