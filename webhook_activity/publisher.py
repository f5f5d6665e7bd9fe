"""Publish connection status and activity history to attached consumers."""

import logging
from typing import Callable, List, Optional, Tuple

from webhook_activity.models import ActivityEvent, ConnectionStatus, StreamView

logger = logging.getLogger(__name__)

StreamListener = Callable[[StreamView], None]
Unsubscribe = Callable[[], None]


class StatePublisher:
    """
    Holds the latest StreamView and fans it out to listeners.

    Each call to publish() that changes the view notifies every listener
    exactly once, synchronously, in subscription order. Calls that change
    nothing are not published.
    """

    def __init__(self, initial: Optional[StreamView] = None):
        self._view = initial or StreamView()
        self._listeners: List[StreamListener] = []

    def get_snapshot(self) -> StreamView:
        """Latest published view."""
        return self._view

    def subscribe(self, listener: StreamListener, replay: bool = True) -> Unsubscribe:
        """
        Attach a listener.

        Args:
            listener: Called with every new StreamView
            replay: Hand the latest view to the listener right away

        Returns:
            Callable that detaches the listener; calling it twice is a no-op
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        if replay:
            self._deliver(listener, self._view)
        return unsubscribe

    def publish(
        self,
        status: Optional[ConnectionStatus] = None,
        history: Optional[Tuple[ActivityEvent, ...]] = None,
    ) -> bool:
        """
        Publish a new view built from the given status and/or history.

        Omitted parts keep their current value.

        Returns:
            True if listeners were notified
        """
        current = self._view
        new_status = current.status if status is None else status
        new_history = current.history if history is None else history

        # Identity, not equality: a pushed duplicate of an equal event is still a change
        same_history = new_history is current.history or (not new_history and not current.history)
        if new_status == current.status and same_history:
            return False

        self._view = StreamView(status=new_status, history=new_history)
        if new_status != current.status:
            logger.debug("Stream status: %s -> %s", current.status.value, new_status.value)

        # Copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            self._deliver(listener, self._view)
        return True

    @property
    def listener_count(self) -> int:
        """Number of attached listeners."""
        return len(self._listeners)

    def _deliver(self, listener: StreamListener, view: StreamView) -> None:
        try:
            listener(view)
        except Exception as e:
            logger.error("Error notifying stream listener: %s", e, exc_info=True)
