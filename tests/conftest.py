"""
Pytest Configuration and Fixtures for the edge_interop project.

This module provides an in-memory stand-in for `aiomqtt.Client`, so the
connection wrapper, the companion client and the edge responder can be
tested without a running broker.
"""

import asyncio
import logging
import sys
from types import SimpleNamespace

import pytest
from aiomqtt import MqttError

from edge_interop.models import ConnectionConfig


class FakeMQTTClient:
    """
    Mimics the parts of aiomqtt.Client the connection wrapper uses:
    the async context manager, subscribe/unsubscribe/publish and the
    `messages` async iterator.
    """

    def __init__(self, refuse: bool = False, reject_topics=()):
        self.refuse = refuse
        self.reject_topics = set(reject_topics)
        self.fail_publish = False
        self.subscribed = []
        self.unsubscribed = []
        self.published = []
        self.closed = False
        self._incoming = asyncio.Queue()

    async def __aenter__(self):
        if self.refuse:
            raise MqttError("Connection refused")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True
        return False

    async def subscribe(self, topic, *args, **kwargs):
        if topic in self.reject_topics:
            raise ValueError("Invalid subscription filter")
        self.subscribed.append(topic)

    async def unsubscribe(self, topic, *args, **kwargs):
        self.unsubscribed.append(topic)

    async def publish(self, topic, payload=None, qos=0, retain=False, **kwargs):
        # paho refuses wildcards in a publish topic before anything is sent
        if "+" in topic or "#" in topic:
            raise ValueError("Publish topic cannot contain wildcards")
        if self.fail_publish:
            raise MqttError("Publish failed")
        self.published.append((topic, payload))

    def deliver(self, topic, payload):
        """Simulates the broker pushing a message to this client."""
        self._incoming.put_nowait(SimpleNamespace(topic=SimpleNamespace(value=topic), payload=payload))

    def drop(self):
        """Simulates the connection going away."""
        self._incoming.put_nowait(MqttError("Connection lost"))

    @property
    def messages(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            item = await self._incoming.get()
            if isinstance(item, Exception):
                raise item
            yield item


class FakeBroker:
    """Hands out one FakeMQTTClient per connection attempt."""

    def __init__(self):
        self.clients = []
        self.connect_calls = []
        self.refuse_next = 0
        self.reject_topics = set()

    def connect(self, hostname, port, **kwargs):
        self.connect_calls.append((hostname, port, kwargs))
        client = FakeMQTTClient(refuse=self.refuse_next > 0, reject_topics=self.reject_topics)
        if self.refuse_next:
            self.refuse_next -= 1
        self.clients.append(client)
        return client


@pytest.fixture
def fake_broker(mocker):
    """Replaces aiomqtt.Client inside the connection module."""
    broker = FakeBroker()
    mocker.patch("edge_interop.connection.MQTTClient", side_effect=broker.connect)
    return broker


@pytest.fixture
def connection_config():
    return ConnectionConfig(host="broker.local",
                            port=1883,
                            client_id="edge-test",
                            publish_topic="edge/out",
                            subscribe_topic="edge/in",
                            reconnect_delay=0.01)


@pytest.fixture
def wait_until():
    """Polls a predicate on the event loop until it holds or the timeout hits."""
    async def _wait_until(predicate, timeout: float = 1.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                pytest.fail("Condition not met in time")
            await asyncio.sleep(0.005)
    return _wait_until


@pytest.fixture
def scripted_input():
    """Builds an input() replacement that answers from a script, then raises EOFError."""
    def _scripted_input(*lines):
        answers = iter(lines)

        def read():
            try:
                return next(answers)
            except StopIteration:
                raise EOFError
        return read
    return _scripted_input


@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    """
    Configures the Python logging framework globally for all tests.
    Because tests bypass the entry points, this ensures our logs are
    formatted and visible during test runs.
    """
    formatter = logging.Formatter(fmt="%(levelname)-8s %(message)s - %(funcName)s:%(lineno)d ")
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
