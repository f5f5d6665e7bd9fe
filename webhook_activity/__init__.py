"""
Webhook Activity - live webhook delivery activity stream client

Keeps a persistent, authenticated connection to the activity feed, reconnects
with bounded exponential backoff, decodes inbound events and exposes a bounded,
newest-first view of recent activity to any number of subscribers.
"""

from .buffer import ActivityBuffer
from .config import StreamSettings, load_settings
from .connection_manager import StreamConnectionManager, backoff_delay, build_stream_url
from .credentials import CredentialStore, FileCredentialStore
from .decoder import DecodeStats, EventDecoder, decode_message
from .exceptions import ActivityStreamError, StreamNotStartedError
from .models import (
    ActivityEvent, ConnectionStatus, DeliveryAttemptEvent, DeliveryErrorEvent, DeliveryEvent,
    DeliveryFailedEvent, DeliverySuccessEvent, InfoEvent, StreamView, UnknownActivityEvent
)
from .publisher import StatePublisher
from .stream import ActivityStream

__version__ = "0.1.0"

__all__ = [
    'ActivityStream',
    'ActivityBuffer',
    'StatePublisher',
    'StreamConnectionManager',
    'backoff_delay',
    'build_stream_url',
    'CredentialStore',
    'FileCredentialStore',
    'EventDecoder',
    'DecodeStats',
    'decode_message',
    'StreamSettings',
    'load_settings',
    'ActivityStreamError',
    'StreamNotStartedError',
    'ActivityEvent',
    'ConnectionStatus',
    'DeliveryEvent',
    'DeliveryAttemptEvent',
    'DeliverySuccessEvent',
    'DeliveryFailedEvent',
    'DeliveryErrorEvent',
    'InfoEvent',
    'UnknownActivityEvent',
    'StreamView',
]
