"""Exceptions raised by the activity stream client.

Transport and decode problems never surface as exceptions; they are logged and
reflected in the published connection status. These types cover API misuse only.
"""


class ActivityStreamError(Exception):
    """Base class for activity stream errors."""


class StreamNotStartedError(ActivityStreamError):
    """Raised when the stream is driven before start() was awaited."""
