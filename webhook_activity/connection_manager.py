"""
Stream Connection Manager

Owns the activity stream connection lifecycle: open, close and retry with
bounded exponential backoff, keyed by the current credential.

Every credential change starts a new session generation. Connection tasks
carry the generation they were started for and check it before touching the
buffer or the published status, so a superseded attempt can never leak
events or status changes into a newer session.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Protocol
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

import websockets

from webhook_activity.buffer import ActivityBuffer
from webhook_activity.config import StreamSettings
from webhook_activity.credentials import CredentialStore
from webhook_activity.decoder import EventDecoder, RawMessage
from webhook_activity.exceptions import StreamNotStartedError
from webhook_activity.logging_config import mask_url_credential
from webhook_activity.models import ConnectionStatus
from webhook_activity.publisher import StatePublisher

logger = logging.getLogger(__name__)


class StreamTransport(Protocol):
    """An open connection: async-iterable over inbound frames, closable."""

    def __aiter__(self) -> AsyncIterator[RawMessage]:
        ...

    async def close(self) -> None:
        ...


Connector = Callable[[str], Awaitable[StreamTransport]]
Sleep = Callable[[float], Awaitable[Any]]


def backoff_delay(attempt: int, base: float = 1.0, cap: float = 30.0) -> float:
    """
    Delay in seconds before the retry following failed attempt ``attempt``.

    ``min(2^attempt * base, cap)``: 1, 2, 4, 8, 16, 30, 30, ... with defaults.
    """
    # Exponent is clamped so huge attempt counts cannot overflow a float
    return min((2 ** min(attempt, 32)) * base, cap)


def build_stream_url(base_url: str, credential: str, param: str = "apiKey") -> str:
    """Embed the credential as a query parameter on the base endpoint."""
    parts = urlsplit(base_url)
    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key != param]
    query.append((param, credential))
    return urlunsplit(parts._replace(query=urlencode(query, safe="", quote_via=quote)))


def websocket_connector(settings: StreamSettings) -> Connector:
    """Create a connector that opens WebSocket connections with the configured timeouts."""

    async def connect(url: str) -> StreamTransport:
        return await websockets.connect(
            url,
            open_timeout=settings.open_timeout,
            ping_interval=settings.ping_interval,
            ping_timeout=settings.ping_timeout,
            close_timeout=settings.close_timeout,
        )

    return connect


class StreamConnectionManager:
    """
    Connection lifecycle state machine for the activity stream.

    Driven by three kinds of events: credential changes (from the credential
    store), socket events (open, message, close) and retry timer expiry.
    Transport errors never propagate; they only move the published status.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        publisher: Optional[StatePublisher] = None,
        buffer: Optional[ActivityBuffer] = None,
        settings: Optional[StreamSettings] = None,
        connector: Optional[Connector] = None,
        decoder: Optional[EventDecoder] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.settings = settings or StreamSettings()
        self.credentials = credentials
        self.publisher = publisher or StatePublisher()
        self.buffer = buffer or ActivityBuffer(self.settings.history_size)
        self.decoder = decoder or EventDecoder()
        self._connector = connector or websocket_connector(self.settings)
        self._sleep = sleep or asyncio.sleep

        self._generation = 0
        self._credential: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._attempt = 0
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._running = False

    @property
    def status(self) -> ConnectionStatus:
        """Currently published connection status."""
        return self.publisher.get_snapshot().status

    @property
    def attempt(self) -> int:
        """Retry attempt counter; reset to 0 on every successful open."""
        return self._attempt

    @property
    def generation(self) -> int:
        """Session generation, bumped on every credential change."""
        return self._generation

    @property
    def task(self) -> Optional[asyncio.Task]:
        """Connection task of the current session, if any."""
        return self._task

    @property
    def is_active(self) -> bool:
        """True while connected, connecting or waiting to retry."""
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start reacting to credential changes and connect if a credential is set."""
        if self._running:
            return

        self._running = True
        self._unsubscribe = self.credentials.subscribe(self._on_credential_change)
        credential = self.credentials.current()
        if credential:
            self._start_session(credential)
        logger.info("Connection manager started")

    async def stop(self) -> None:
        """Close the connection, cancel retries and stop reacting to credentials."""
        if not self._running:
            return

        self._running = False
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

        had_session = self._credential is not None
        self._generation += 1
        task, self._task = self._task, None
        if task and not task.done():
            self.publisher.publish(status=ConnectionStatus.CLOSING)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._credential = None
        self._attempt = 0
        self.buffer.clear()
        self.publisher.publish(
            status=ConnectionStatus.CLOSED if had_session else None,
            history=self.buffer.snapshot(),
        )
        logger.info("Connection manager stopped")

    def _on_credential_change(self, credential: Optional[str]) -> None:
        """Credential store listener."""
        if credential is None:
            self._end_session()
        elif credential == self._credential and self.is_active:
            logger.debug("Credential re-applied while connection is active; keeping it")
        else:
            self._start_session(credential)

    def _start_session(self, credential: str) -> None:
        """Supersede whatever is running and connect with ``credential``."""
        if not self._running:
            raise StreamNotStartedError("Connection manager is not running")

        self._generation += 1
        self._cancel_task()
        self._credential = credential
        self._attempt = 0
        self.buffer.clear()

        url = build_stream_url(self.settings.stream_url, credential, self.settings.credential_param)
        logger.info(
            "Starting activity stream session %d: %s",
            self._generation,
            mask_url_credential(url, self.settings.credential_param),
        )

        # One view for both changes so nobody sees the old history while connecting
        self.publisher.publish(status=ConnectionStatus.CONNECTING, history=self.buffer.snapshot())
        self._task = asyncio.create_task(self._run(self._generation, url))

    def _end_session(self) -> None:
        """Credential removed: cancel everything and clear history atomically."""
        had_session = self._credential is not None or self._task is not None
        self._generation += 1
        self._cancel_task()
        self._task = None
        self._credential = None
        self._attempt = 0
        self.buffer.clear()

        if had_session:
            logger.info("Credential removed; activity stream session ended")
        self.publisher.publish(
            status=ConnectionStatus.CLOSED if had_session else None,
            history=self.buffer.snapshot(),
        )

    def _cancel_task(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _run(self, generation: int, url: str) -> None:
        """Connect, consume and retry until retries run out or the session is superseded."""
        max_attempts = self.settings.max_reconnect_attempts

        while True:
            await self._connect_once(generation, url)
            if not self._is_current(generation):
                return

            if self._attempt >= max_attempts:
                logger.error("Max reconnection attempts reached (%d); giving up", max_attempts)
                return

            delay = backoff_delay(
                self._attempt,
                self.settings.reconnect_base_delay,
                self.settings.reconnect_max_delay,
            )
            logger.info(
                "Reconnecting in %.1f seconds (attempt %d/%d)",
                delay, self._attempt + 1, max_attempts,
            )
            await self._sleep(delay)
            if not self._is_current(generation):
                return

            self._attempt += 1
            self.publisher.publish(status=ConnectionStatus.CONNECTING)

    async def _connect_once(self, generation: int, url: str) -> None:
        """One connection attempt; returns once it failed or closed."""
        try:
            transport = await self._connector(url)
        except Exception as e:
            if self._is_current(generation):
                logger.warning("Failed to connect to activity stream: %s", e)
                self.publisher.publish(status=ConnectionStatus.CLOSED)
            return

        if not self._is_current(generation):
            await self._close_transport(transport)
            return

        self._attempt = 0
        logger.info("Activity stream connection opened")
        self.publisher.publish(status=ConnectionStatus.OPEN)

        try:
            async for raw in transport:
                if not self._is_current(generation):
                    break
                self._handle_message(raw)
            else:
                logger.info("Activity stream connection closed by server")
        except Exception as e:
            logger.warning("Activity stream connection lost: %s", e)
        finally:
            await self._close_transport(transport)

        if self._is_current(generation):
            self.publisher.publish(status=ConnectionStatus.CLOSED)

    def _handle_message(self, raw: RawMessage) -> None:
        try:
            event = self.decoder.decode(raw)
        except Exception as e:
            # Decode problems never count against the connection
            logger.error("Unexpected error decoding activity message: %s", e, exc_info=True)
            self.decoder.stats.discarded += 1
            return
        if event is None:
            return
        self.buffer.push(event)
        self.publisher.publish(history=self.buffer.snapshot())

    async def _close_transport(self, transport: StreamTransport) -> None:
        try:
            await transport.close()
        except Exception as e:
            logger.debug("Error closing activity stream connection: %s", e)
