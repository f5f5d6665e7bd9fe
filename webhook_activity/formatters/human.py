"""Human-readable formatter for activity stream output."""

import json
from datetime import datetime
from typing import Any, Optional, TextIO

from webhook_activity.formatters.base import BaseFormatter
from webhook_activity.models import (
    ActivityEvent,
    ConnectionStatus,
    DeliveryAttemptEvent,
    DeliveryErrorEvent,
    DeliveryEvent,
    DeliveryFailedEvent,
    DeliverySuccessEvent,
    InfoEvent,
)

ID_WIDTH = 8


def short_id(value: Any) -> str:
    """Shorten an identifier for table display."""
    if value is None:
        return "-"
    text = str(value)
    return text if len(text) <= ID_WIDTH else text[:ID_WIDTH] + "…"


class HumanFormatter(BaseFormatter):
    """Human-readable formatter with one table row per event."""

    def __init__(self, output_file: Optional[TextIO] = None, show_header: bool = True,
                 clock=datetime.now):
        """Initialize human formatter."""
        super().__init__(output_file)
        self.show_header = show_header
        self.clock = clock

    def format_header(self, stream_url: str, **kwargs) -> str:
        """Format header information."""
        if not self.show_header:
            return ""
        history_size = kwargs.get('history_size', 100)
        started = self.clock().strftime("%Y-%m-%d %H:%M:%S")

        header = f"""
Webhook Activity Stream
Endpoint: {stream_url}
History: last {history_size} events
Started: {started}

Time      Type               Webhook    Delivery   Detail
─────────────────────────────────────────────────────────────────────
"""
        return header

    def format_event(self, event: ActivityEvent) -> str:
        """Format one event as a table row."""
        time_str = self.clock().strftime("%H:%M:%S")
        if isinstance(event, DeliveryEvent):
            webhook = short_id(event.webhook_id)
            delivery = short_id(event.delivery_id)
        else:
            webhook = delivery = ""

        return f"{time_str:<9} {event.type:<18} {webhook:<10} {delivery:<10} {self._detail(event)}\n"

    def format_status(self, status: ConnectionStatus, **kwargs) -> str:
        """Format a status change line."""
        time_str = self.clock().strftime("%H:%M:%S")
        line = f"{time_str:<9} [connection {status.value}]"
        attempt = kwargs.get('attempt')
        if attempt:
            line += f" retry {attempt}"
        return line + "\n"

    def format_error(self, error: str, **kwargs) -> str:
        """Format error message."""
        return f"ERROR: {error}\n"

    def _detail(self, event: ActivityEvent) -> str:
        if isinstance(event, InfoEvent):
            return str(event.message or "")
        if isinstance(event, DeliveryAttemptEvent):
            return f"attempt {event.attempt} {event.event_type or ''} -> {event.url or '?'}"
        if isinstance(event, DeliverySuccessEvent):
            return f"HTTP {event.status_code}"
        if isinstance(event, DeliveryFailedEvent):
            code = event.status_code if event.status_code is not None else "-"
            return f"HTTP {code} {event.reason or ''}".rstrip()
        if isinstance(event, DeliveryErrorEvent):
            return str(event.error or "")

        # Unknown event kinds: show whatever else came with them
        extra = {key: value for key, value in event.to_wire().items() if key != "type"}
        return json.dumps(extra, ensure_ascii=False, sort_keys=True, default=str) if extra else ""
