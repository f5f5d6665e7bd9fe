"""
Activity stream context.

ActivityStream is the explicitly constructed owner of one credential store,
connection manager, buffer and publisher. Create one per application, start
it, hand it to whatever renders the activity, and close it on shutdown:

    async with ActivityStream(settings) as stream:
        unsubscribe = stream.subscribe(render)
        stream.set_credential(api_key)
        ...
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

import httpx

from webhook_activity.buffer import ActivityBuffer
from webhook_activity.config import StreamSettings
from webhook_activity.connection_manager import Connector, Sleep, StreamConnectionManager
from webhook_activity.credentials import CredentialStore, FileCredentialStore
from webhook_activity.decoder import EventDecoder
from webhook_activity.exceptions import StreamNotStartedError
from webhook_activity.models import ConnectionStatus, StreamView
from webhook_activity.publisher import StatePublisher, StreamListener, Unsubscribe

logger = logging.getLogger(__name__)


def create_credential_store(settings: StreamSettings) -> CredentialStore:
    """Credential store for the given settings; a configured api_key wins over a stored one."""
    if settings.credential_file:
        store: CredentialStore = FileCredentialStore(settings.credential_file)
    else:
        store = CredentialStore()

    if settings.api_key:
        store.set(settings.api_key)
    return store


class ActivityStream:
    """Live webhook activity feed for one credential at a time."""

    def __init__(
        self,
        settings: Optional[StreamSettings] = None,
        credentials: Optional[CredentialStore] = None,
        connector: Optional[Connector] = None,
        sleep: Optional[Sleep] = None,
    ):
        """Initialize the stream; nothing connects until start()."""
        self.settings = settings or StreamSettings()
        self.credentials = credentials if credentials is not None else create_credential_store(self.settings)
        self.buffer = ActivityBuffer(self.settings.history_size)
        self.publisher = StatePublisher()
        self.decoder = EventDecoder()
        self.manager = StreamConnectionManager(
            self.credentials,
            publisher=self.publisher,
            buffer=self.buffer,
            settings=self.settings,
            connector=connector,
            decoder=self.decoder,
            sleep=sleep,
        )
        self._started = False

    async def start(self) -> None:
        """Begin following the credential store (connects if a credential is set)."""
        await self.manager.start()
        self._started = True

    async def aclose(self) -> None:
        """Close the connection and drop the session history."""
        await self.manager.stop()
        self._started = False

    async def __aenter__(self) -> "ActivityStream":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    @property
    def started(self) -> bool:
        """Whether start() has been awaited and aclose() has not."""
        return self._started

    # Consumer interface

    def subscribe(self, listener: StreamListener, replay: bool = True) -> Unsubscribe:
        """Attach a listener for {status, history} updates."""
        return self.publisher.subscribe(listener, replay=replay)

    def get_snapshot(self) -> StreamView:
        """Latest {status, history} view."""
        return self.publisher.get_snapshot()

    @property
    def status(self) -> ConnectionStatus:
        return self.get_snapshot().status

    @property
    def history(self):
        return self.get_snapshot().history

    # Session control

    def set_credential(self, credential: Optional[str]) -> None:
        """Apply an API key; re-applying the same key restarts a stream that gave up."""
        self.credentials.set(credential)

    def clear_credential(self) -> None:
        """Sign out: close the connection and clear the history."""
        self.credentials.clear()

    async def wait_for(
        self,
        predicate: Callable[[StreamView], bool],
        timeout: Optional[float] = None,
    ) -> StreamView:
        """
        Wait until a published view satisfies ``predicate``.

        The current view is checked first.

        Raises:
            StreamNotStartedError: If the stream is not running
            asyncio.TimeoutError: If timeout elapses first
        """
        if not self._started:
            raise StreamNotStartedError("ActivityStream.start() has not been awaited")

        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def listener(view: StreamView) -> None:
            if not future.done() and predicate(view):
                future.set_result(view)

        unsubscribe = self.subscribe(listener)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            unsubscribe()

    async def check_health(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> Dict[str, Any]:
        """Check stream server health over HTTP using the current credential."""
        headers = {}
        credential = self.credentials.current()
        if credential:
            headers["Authorization"] = f"Bearer {credential}"

        try:
            async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
                response = await client.get(self.settings.health_url, headers=headers)
                response.raise_for_status()
                return response.json()
        except Exception as e:
            logger.error("Health check failed: %s", e)
            return {"status": "unhealthy", "error": str(e)}
