"""Output formatters for activity stream events."""

from webhook_activity.formatters.base import BaseFormatter
from webhook_activity.formatters.human import HumanFormatter
from webhook_activity.formatters.json import JSONFormatter

__all__ = ["BaseFormatter", "HumanFormatter", "JSONFormatter"]
