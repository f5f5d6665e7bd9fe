"""Shared fixtures for activity stream tests."""

import os

import pytest

from tests.fakes import FakeConnector, RecordingSleep
from webhook_activity.buffer import ActivityBuffer
from webhook_activity.config import StreamSettings
from webhook_activity.connection_manager import StreamConnectionManager
from webhook_activity.credentials import CredentialStore
from webhook_activity.publisher import StatePublisher


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep real WEBHOOK_ACTIVITY_* variables out of the tests."""
    for name in list(os.environ):
        if name.startswith("WEBHOOK_ACTIVITY_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings():
    """Test stream settings."""
    return StreamSettings(stream_url="ws://activity.test:3000")


@pytest.fixture
def connector():
    """Fake network connector."""
    return FakeConnector()


@pytest.fixture
def sleep():
    """Retry timer that fires immediately."""
    return RecordingSleep()


@pytest.fixture
def credentials():
    """Empty credential store."""
    return CredentialStore()


@pytest.fixture
def views():
    """Collected published views."""
    return []


@pytest.fixture
def manager(credentials, settings, connector, sleep, views):
    """Connection manager wired to fakes, with a recording listener attached."""
    publisher = StatePublisher()
    publisher.subscribe(views.append)
    return StreamConnectionManager(
        credentials,
        publisher=publisher,
        buffer=ActivityBuffer(settings.history_size),
        settings=settings,
        connector=connector,
        sleep=sleep,
    )
