"""Shared fixtures: in-memory database and scripted channel adapters."""

import time
from uuid import uuid4

import pytest
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from visa_notifications.channels.base import ChannelAdapter, Failed, OutboundMessage, Sent
from visa_notifications.channels.registry import AdapterRegistry
from visa_notifications.models.notification import NotificationChannel


class ScriptedAdapter(ChannelAdapter):
    """Channel adapter that replays scripted outcomes.

    Each send pops the next outcome: a Sent/Failed result is returned,
    an exception instance is raised. Once the script is empty every send
    succeeds.
    """

    def __init__(self, channel: NotificationChannel, outcomes=None, delay: float = 0.0):
        self.channel = channel
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.calls: list[OutboundMessage] = []

    def send(self, message: OutboundMessage):
        self.calls.append(message)
        if self.delay:
            time.sleep(self.delay)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return Sent(message_id=f"{self.channel.value}-{len(self.calls)}")


@pytest.fixture
def engine():
    """Create an in-memory test database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Import models to register them
    from visa_notifications.models.notification import ChannelDelivery, Notification  # noqa: F401

    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def db_session(engine):
    """Create a test database session."""
    with Session(engine) as session:
        yield session


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def adapters():
    """One scripted adapter per channel, all succeeding by default."""
    return {channel: ScriptedAdapter(channel) for channel in NotificationChannel}


@pytest.fixture
def registry(adapters):
    return AdapterRegistry(list(adapters.values()))


@pytest.fixture
def failing(adapters):
    """Make a channel fail every send."""

    def _failing(channel: NotificationChannel, reason: str = "provider down", times: int = 10):
        adapters[channel].outcomes = [Failed(reason)] * times
        return adapters[channel]

    return _failing


@pytest.fixture
def scripted_adapter():
    """Factory for adapters outside the default registry."""
    return ScriptedAdapter
