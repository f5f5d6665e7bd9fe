"""JSON formatter for activity stream output."""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

from webhook_activity.formatters.base import BaseFormatter
from webhook_activity.models import ActivityEvent, ConnectionStatus


def utc_timestamp() -> str:
    """Current UTC time in ISO 8601 with a Z suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class JSONFormatter(BaseFormatter):
    """JSON Lines formatter for machine-readable output."""
    
    def __init__(self, output_file: Optional[TextIO] = None, pretty: bool = False):
        """Initialize JSON formatter."""
        super().__init__(output_file)
        self.pretty = pretty
        self.indent = 2 if pretty else None
    
    def format_header(self, stream_url: str, **kwargs) -> str:
        """Format header information as JSON."""
        header_data = {
            "event": "session_start",
            "stream_url": stream_url,
            "timestamp": utc_timestamp(),
            "config": kwargs
        }
        return self._format_json(header_data) + "\n"
    
    def format_event(self, event: ActivityEvent) -> str:
        """Format a single activity event as JSON."""
        output_data = {
            "event": "activity",
            "received_at": utc_timestamp(),
            "data": event.to_wire()
        }
        return self._format_json(output_data) + "\n"
    
    def format_status(self, status: ConnectionStatus, **kwargs) -> str:
        """Format a status change as JSON."""
        status_data = {
            "event": "status",
            "status": status.value,
            "timestamp": utc_timestamp(),
            **kwargs
        }
        return self._format_json(status_data) + "\n"
    
    def format_error(self, error: str, **kwargs) -> str:
        """Format error message as JSON."""
        error_data = {
            "event": "error",
            "error": error,
            "timestamp": utc_timestamp(),
            **kwargs
        }
        return self._format_json(error_data) + "\n"
    
    def _format_json(self, data: Dict[str, Any]) -> str:
        """Format data as JSON string."""
        try:
            return json.dumps(
                data,
                indent=self.indent,
                ensure_ascii=False,
                sort_keys=True
            )
        except (TypeError, ValueError):
            # Opaque pass-through payloads may hold values json cannot encode
            return json.dumps(data, indent=self.indent, ensure_ascii=False, sort_keys=True, default=str)
