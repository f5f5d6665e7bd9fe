"""Tests for the stream connection manager state machine."""

import asyncio
import json

import pytest

from tests.fakes import RecordingSleep, settle, statuses, wait_until
from webhook_activity.connection_manager import StreamConnectionManager, backoff_delay, build_stream_url
from webhook_activity.models import ConnectionStatus, DeliverySuccessEvent


def success(delivery_id: str) -> str:
    return json.dumps({
        "type": "delivery_success",
        "deliveryId": delivery_id,
        "webhookId": "wh-1",
        "eventId": "ev-1",
        "statusCode": 200,
    })


class TestBackoff:
    """Test reconnect delay calculation."""

    def test_backoff_sequence(self):
        """Delays double from one second and cap at thirty."""
        delays = [backoff_delay(attempt) for attempt in range(8)]
        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0, 30.0]

    def test_backoff_custom_base_and_cap(self):
        assert backoff_delay(0, base=0.5, cap=3.0) == 0.5
        assert backoff_delay(3, base=0.5, cap=3.0) == 3.0

    def test_backoff_huge_attempt(self):
        """Very large attempt counts stay at the cap."""
        assert backoff_delay(5000) == 30.0


class TestBuildStreamUrl:
    """Test endpoint derivation."""

    def test_credential_query_parameter(self):
        assert build_stream_url("ws://localhost:3000", "abc123") == "ws://localhost:3000?apiKey=abc123"

    def test_credential_is_encoded(self):
        url = build_stream_url("ws://localhost:3000", "a b/c&d")
        assert url == "ws://localhost:3000?apiKey=a%20b%2Fc%26d"

    def test_existing_query_kept_and_param_replaced(self):
        url = build_stream_url("wss://feed.example/ws?v=2&apiKey=old", "new", param="apiKey")
        assert url == "wss://feed.example/ws?v=2&apiKey=new"


class TestConnectionLifecycle:
    """Test connect, open and message handling."""

    @pytest.mark.asyncio
    async def test_no_credential_stays_uninstantiated(self, manager, connector):
        await manager.start()
        await settle()

        assert manager.status == ConnectionStatus.UNINSTANTIATED
        assert connector.calls == 0
        await manager.stop()
        assert manager.status == ConnectionStatus.UNINSTANTIATED

    @pytest.mark.asyncio
    async def test_credential_set_connects(self, manager, credentials, connector, views):
        await manager.start()
        credentials.set("key-a")
        await wait_until(lambda: manager.status == ConnectionStatus.OPEN)

        assert statuses(views) == ["Uninstantiated", "Connecting", "Open"]
        assert connector.urls == ["ws://activity.test:3000?apiKey=key-a"]
        assert manager.attempt == 0
        await manager.stop()

    @pytest.mark.asyncio
    async def test_existing_credential_connects_on_start(self, manager, credentials, connector):
        credentials.set("key-a")
        await manager.start()
        await wait_until(lambda: manager.status == ConnectionStatus.OPEN)

        assert connector.calls == 1
        await manager.stop()

    @pytest.mark.asyncio
    async def test_messages_buffered_newest_first(self, manager, credentials, connector):
        await manager.start()
        credentials.set("key-a")
        await wait_until(lambda: manager.status == ConnectionStatus.OPEN)

        for delivery_id in ("d1", "d2", "d3"):
            connector.last.feed(success(delivery_id))
        await wait_until(lambda: len(manager.buffer) == 3)

        history = manager.publisher.get_snapshot().history
        assert [event.delivery_id for event in history] == ["d3", "d2", "d1"]
        assert all(isinstance(event, DeliverySuccessEvent) for event in history)
        await manager.stop()

    @pytest.mark.asyncio
    async def test_malformed_message_changes_nothing(self, manager, credentials, connector, views):
        await manager.start()
        credentials.set("key-a")
        await wait_until(lambda: manager.status == ConnectionStatus.OPEN)
        connector.last.feed(success("d1"))
        await wait_until(lambda: len(manager.buffer) == 1)
        published = len(views)

        connector.last.feed("not json")
        connector.last.feed(json.dumps({"no": "type"}))
        connector.last.feed(success("d2"))
        await wait_until(lambda: len(manager.buffer) == 2)

        # Only the valid message produced a view
        assert len(views) == published + 1
        assert manager.status == ConnectionStatus.OPEN
        assert manager.decoder.stats.discarded == 2
        await manager.stop()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", [
        '{"type": "info", "n": ' + "1" * 5000 + "}",
        "[" * 100000,
    ])
    async def test_unparseable_message_keeps_connection(self, manager, credentials, connector, sleep, views, raw):
        """Frames that make the JSON parser raise are dropped without reconnecting."""
        await manager.start()
        credentials.set("key-a")
        await wait_until(lambda: manager.status == ConnectionStatus.OPEN)

        connector.last.feed(raw)
        connector.last.feed(success("d1"))
        await wait_until(lambda: len(manager.buffer) == 1)

        assert connector.calls == 1
        assert sleep.delays == []
        assert not connector.last.closed
        assert statuses(views) == ["Uninstantiated", "Connecting", "Open"]
        assert manager.decoder.stats.discarded == 1
        await manager.stop()

    @pytest.mark.asyncio
    async def test_decoder_exception_keeps_connection(self, manager, credentials, connector, monkeypatch):
        await manager.start()
        credentials.set("key-a")
        await wait_until(lambda: manager.status == ConnectionStatus.OPEN)

        def explode(raw):
            raise RuntimeError("decoder bug")

        monkeypatch.setattr(manager.decoder, "decode", explode)
        connector.last.feed(success("d1"))
        await wait_until(lambda: manager.decoder.stats.discarded == 1)
        await settle()

        assert manager.status == ConnectionStatus.OPEN
        assert connector.calls == 1
        assert len(manager.buffer) == 0
        await manager.stop()


class TestReconnection:
    """Test retry with backoff."""

    @pytest.mark.asyncio
    async def test_drop_reconnects_after_one_second(self, manager, credentials, connector, sleep, views):
        await manager.start()
        credentials.set("key-a")
        await wait_until(lambda: manager.status == ConnectionStatus.OPEN)
        first = connector.last

        first.drop()
        await wait_until(lambda: connector.calls == 2 and manager.status == ConnectionStatus.OPEN)

        assert sleep.delays == [1.0]
        assert first.closed
        assert statuses(views) == ["Uninstantiated", "Connecting", "Open", "Closed", "Connecting", "Open"]
        assert manager.attempt == 0
        await manager.stop()

    @pytest.mark.asyncio
    async def test_second_failure_waits_two_seconds(self, manager, credentials, connector, sleep):
        await manager.start()
        credentials.set("key-a")
        await wait_until(lambda: manager.status == ConnectionStatus.OPEN)

        connector.outcomes = [ConnectionRefusedError("refused")]
        connector.last.drop()
        await wait_until(lambda: connector.calls == 3 and manager.status == ConnectionStatus.OPEN)

        assert sleep.delays == [1.0, 2.0]
        await manager.stop()

    @pytest.mark.asyncio
    async def test_clean_server_close_also_retries(self, manager, credentials, connector, sleep):
        await manager.start()
        credentials.set("key-a")
        await wait_until(lambda: manager.status == ConnectionStatus.OPEN)

        connector.last.finish()
        await wait_until(lambda: connector.calls == 2 and manager.status == ConnectionStatus.OPEN)

        assert sleep.delays == [1.0]
        await manager.stop()

    @pytest.mark.asyncio
    async def test_history_survives_reconnect(self, manager, credentials, connector):
        await manager.start()
        credentials.set("key-a")
        await wait_until(lambda: manager.status == ConnectionStatus.OPEN)
        connector.last.feed(success("d1"))
        await wait_until(lambda: len(manager.buffer) == 1)

        connector.last.drop()
        await wait_until(lambda: connector.calls == 2 and manager.status == ConnectionStatus.OPEN)

        assert len(manager.buffer) == 1
        await manager.stop()

    @pytest.mark.asyncio
    async def test_retries_exhausted_settles_closed(self, manager, credentials, connector, sleep):
        connector.always_fail = ConnectionRefusedError("refused")
        await manager.start()
        credentials.set("key-a")
        await wait_until(lambda: not manager.is_active)

        assert sleep.delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0, 30.0, 30.0, 30.0]
        assert connector.calls == 11
        assert manager.status == ConnectionStatus.CLOSED

        await settle()
        assert connector.calls == 11
        await manager.stop()

    @pytest.mark.asyncio
    async def test_reapplying_credential_restarts_after_giving_up(self, manager, credentials, connector, sleep):
        connector.always_fail = ConnectionRefusedError("refused")
        await manager.start()
        credentials.set("key-a")
        await wait_until(lambda: not manager.is_active)

        connector.always_fail = None
        credentials.set("key-a")
        await wait_until(lambda: manager.status == ConnectionStatus.OPEN)

        assert connector.calls == 12
        assert manager.attempt == 0
        await manager.stop()

    @pytest.mark.asyncio
    async def test_reapplying_credential_while_open_is_noop(self, manager, credentials, connector):
        await manager.start()
        credentials.set("key-a")
        await wait_until(lambda: manager.status == ConnectionStatus.OPEN)
        generation = manager.generation

        credentials.set("key-a")
        await settle()

        assert connector.calls == 1
        assert manager.generation == generation
        await manager.stop()


class TestSessionChanges:
    """Test credential change and removal."""

    @pytest.mark.asyncio
    async def test_credential_change_starts_fresh_session(self, manager, credentials, connector):
        await manager.start()
        credentials.set("key-a")
        await wait_until(lambda: manager.status == ConnectionStatus.OPEN)
        old = connector.last
        old.feed(success("a1"))
        await wait_until(lambda: len(manager.buffer) == 1)

        credentials.set("key-b")
        # History is empty the moment the new session starts
        assert manager.publisher.get_snapshot().history == ()
        assert manager.status == ConnectionStatus.CONNECTING

        await wait_until(lambda: connector.calls == 2 and manager.status == ConnectionStatus.OPEN)
        assert connector.urls[-1].endswith("apiKey=key-b")
        assert old.closed

        # Late traffic on the superseded connection is never buffered
        old.feed(success("a2"))
        await settle()
        assert manager.publisher.get_snapshot().history == ()
        await manager.stop()

    @pytest.mark.asyncio
    async def test_change_while_connecting_discards_stale_attempt(self, manager, credentials, connector, views):
        pending = asyncio.get_running_loop().create_future()
        connector.outcomes = [pending]
        await manager.start()
        credentials.set("key-a")
        await wait_until(lambda: connector.calls == 1)

        credentials.set("key-b")
        await wait_until(lambda: connector.calls == 2 and manager.status == ConnectionStatus.OPEN)

        # The superseded attempt was cancelled before it produced a transport
        assert len(connector.transports) == 1
        assert connector.last.url.endswith("apiKey=key-b")
        pending.set_result(None)
        await settle()
        assert len(connector.transports) == 1
        assert statuses(views) == ["Uninstantiated", "Connecting", "Open"]
        await manager.stop()

    @pytest.mark.asyncio
    async def test_credential_removed_clears_everything(self, manager, credentials, connector, views):
        await manager.start()
        credentials.set("key-a")
        await wait_until(lambda: manager.status == ConnectionStatus.OPEN)
        connector.last.feed(success("a1"))
        await wait_until(lambda: len(manager.buffer) == 1)
        published = len(views)

        credentials.clear()

        # A single view carries both the status change and the cleared history
        assert len(views) == published + 1
        assert views[-1].status == ConnectionStatus.CLOSED
        assert views[-1].history == ()

        await settle()
        assert connector.last.closed
        assert connector.calls == 1
        assert manager.status == ConnectionStatus.CLOSED
        await manager.stop()

    @pytest.mark.asyncio
    async def test_credential_removed_cancels_pending_retry(self, credentials, settings, connector):
        blocking_sleep = RecordingSleep(block=True)
        manager = StreamConnectionManager(credentials, settings=settings, connector=connector, sleep=blocking_sleep)
        connector.always_fail = ConnectionRefusedError("refused")
        await manager.start()
        credentials.set("key-a")
        await wait_until(lambda: blocking_sleep.delays == [1.0])

        credentials.clear()
        await settle()

        assert not manager.is_active
        assert manager.status == ConnectionStatus.CLOSED
        assert connector.calls == 1
        await manager.stop()

    @pytest.mark.asyncio
    async def test_clear_without_session_is_noop(self, manager, credentials, views):
        await manager.start()
        credentials.clear()

        assert statuses(views) == ["Uninstantiated"]
        await manager.stop()


class TestStop:
    """Test owner shutdown."""

    @pytest.mark.asyncio
    async def test_stop_closes_connection(self, manager, credentials, connector, views):
        await manager.start()
        credentials.set("key-a")
        await wait_until(lambda: manager.status == ConnectionStatus.OPEN)

        await manager.stop()

        assert connector.last.closed
        assert statuses(views)[-2:] == ["Closing", "Closed"]
        assert not manager.is_active

        # No longer following the credential store
        credentials.set("key-b")
        await settle()
        assert connector.calls == 1

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, manager):
        await manager.start()
        await manager.stop()
        await manager.stop()
        assert manager.status == ConnectionStatus.UNINSTANTIATED
