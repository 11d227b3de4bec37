"""
Managed MQTT Connection.

This module is responsible for:
- Owning the single `aiomqtt` connection of a process and its lifecycle (start, stop).
- Reconnecting with a fixed delay whenever the broker is unreachable or the
  connection drops.
- Queueing outbound messages and replaying them once reconnected.
- Remembering subscriptions so they are restored after a reconnect.
- Dispatching lifecycle events and inbound messages to an injected
  `ConnectionHandler`.
"""
import asyncio
import logging
from typing import Optional, Set

from aiomqtt import Client as MQTTClient, MqttError

from edge_interop.models import ConnectionConfig, ConnectionState, TextMessage

logger = logging.getLogger(__name__)


class ConnectionHandler:
    """
    Receives connection lifecycle events and inbound messages.

    Subclasses override what they need; every method is a no-op here.
    Callbacks run on the event loop, one at a time, in arrival order.
    """

    async def on_connected(self):
        pass

    async def on_disconnected(self, error: Optional[BaseException]):
        pass

    async def on_connect_failed(self, error: BaseException):
        pass

    async def on_message(self, message: TextMessage):
        pass


class ManagedMQTTClient:
    config: ConnectionConfig
    handler: ConnectionHandler
    state: ConnectionState
    _outbound: asyncio.Queue
    _pending: Optional[TextMessage]
    _subscriptions: Set[str]
    _client: Optional[MQTTClient]
    _connected: asyncio.Event
    _main_task: Optional[asyncio.Task]

    """
    Persistent, self-healing broker connection.
    """
    def __init__(self, config: ConnectionConfig, handler: Optional[ConnectionHandler] = None):
        self.config = config
        self.handler = handler or ConnectionHandler()
        self.state = ConnectionState.DISCONNECTED

        # Messages wait here while the connection is down
        self._outbound = asyncio.Queue()
        # A message whose publish failed; sent first after reconnect
        self._pending = None
        self._subscriptions = set()

        # Internal state
        self._client = None
        self._connected = asyncio.Event()
        self._main_task = None

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def subscriptions(self) -> Set[str]:
        return set(self._subscriptions)

    async def start(self):
        """
        Launches the connection loop in the background.
        """
        logger.info(f"Starting MQTT connection to {self.config.host}:{self.config.port}...")
        self._main_task = asyncio.create_task(self._main_loop())

    async def stop(self):
        """
        Cancels the connection loop, which closes the connection.
        """
        if self._main_task:
            logger.info("Stopping MQTT connection...")
            self._main_task.cancel()
            try:
                await self._main_task
            except asyncio.CancelledError:
                logger.info("MQTT connection stopped gracefully.")
            except Exception as e:
                logger.error(f"Error during MQTT stop: {e}")
            self._main_task = None
        self._mark_disconnected()

    async def wait_connected(self, timeout: Optional[float] = None) -> bool:
        """Blocks until connected; returns False if the timeout expires first."""
        try:
            await asyncio.wait_for(self._connected.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def enqueue(self, topic: str, text: str) -> bool:
        """
        Queues a text message for publishing.

        Returns False when the broker is not connected right now. The
        message stays queued and goes out once the connection is back.
        """
        message = TextMessage(topic=topic, text=text)
        logger.debug(f"Request to publish on '{topic}': {text}")
        self._outbound.put_nowait(message)
        if not self.is_connected:
            logger.warning(f"Not connected to broker; message for '{topic}' queued until reconnect.")
            return False
        return True

    async def subscribe(self, topic: str):
        """Registers the topic; applied now if connected, else on connect."""
        self._subscriptions.add(topic)
        client = self._client
        if client is None:
            return
        try:
            await client.subscribe(topic)
            logger.info(f"Subscribed to '{topic}'")
        except ValueError as e:
            # Invalid topic filter: retrying would fail the same way
            self._subscriptions.discard(topic)
            logger.error(f"Subscribe to '{topic}' rejected: {e}")
        except MqttError as e:
            logger.error(f"Subscribe to '{topic}' failed: {e}. Will retry on reconnect.")

    async def unsubscribe(self, topic: str):
        self._subscriptions.discard(topic)
        client = self._client
        if client is None:
            return
        try:
            await client.unsubscribe(topic)
            logger.info(f"Unsubscribed from '{topic}'")
        except MqttError as e:
            # The registration is already gone locally and is not restored
            logger.error(f"Unsubscribe from '{topic}' failed: {e}")

    def _mark_disconnected(self):
        self._client = None
        self._connected.clear()
        self.state = ConnectionState.DISCONNECTED

    async def _main_loop(self):
        """
        The persistent connection loop.
        Reconnects after `reconnect_delay` seconds whenever connecting fails
        or an established connection is lost.
        """
        while True:
            self.state = ConnectionState.CONNECTING
            try:
                # The connection is ONLY valid inside this block
                async with MQTTClient(self.config.host,
                                      self.config.port,
                                      identifier=self.config.client_id) as client:
                    self._client = client
                    self.state = ConnectionState.CONNECTED
                    self._connected.set()
                    logger.info(f"Connected to broker {self.config.host}:{self.config.port}")
                    await self._notify(self.handler.on_connected)

                    for topic in sorted(self._subscriptions):
                        try:
                            await client.subscribe(topic)
                            logger.info(f"Subscribed to '{topic}'")
                        except ValueError as e:
                            self._subscriptions.discard(topic)
                            logger.error(f"Subscribe to '{topic}' rejected: {e}")

                    await self._run_session(client)

            except asyncio.CancelledError:
                self._mark_disconnected()
                raise # Let the stop() method handle this
            except Exception as e:
                was_connected = self._client is not None
                self._mark_disconnected()
                if was_connected:
                    logger.error(f"MQTT Connection lost: {e}. Retrying in {self.config.reconnect_delay}s...")
                    await self._notify(self.handler.on_disconnected, e)
                else:
                    logger.error(f"MQTT Connection failed: {e}. Retrying in {self.config.reconnect_delay}s...")
                    await self._notify(self.handler.on_connect_failed, e)
                await asyncio.sleep(self.config.reconnect_delay)

    async def _notify(self, callback, *args):
        """Runs a lifecycle callback; a failing handler never stops the reconnect loop."""
        try:
            await callback(*args)
        except Exception:
            logger.exception(f"Connection handler {getattr(callback, '__name__', callback)} failed")

    async def _run_session(self, client: MQTTClient):
        """
        Runs the publisher and reader loops on one live connection.
        Returns only by raising: whichever loop fails first ends the session.
        """
        tasks = [
            asyncio.create_task(self._publisher_loop(client)),
            asyncio.create_task(self._reader_loop(client)),
        ]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        for task in done:
            task.result()
        raise MqttError("Message stream closed by broker")

    async def _publisher_loop(self, client: MQTTClient):
        """The background worker that pushes queued messages to the broker."""
        while True:
            if self._pending is None:
                self._pending = await self._outbound.get()
            message = self._pending

            try:
                await client.publish(**message.to_aiomqtt_args())
                logger.debug(f"Published to topic '{message.topic}': {message.text}")
            except ValueError as e:
                # Rejected by the client (e.g. wildcard topic): drop it, a retry cannot succeed
                logger.error(f"Dropped message for '{message.topic}': {e}")

            self._pending = None
            self._outbound.task_done()

    async def _reader_loop(self, client: MQTTClient):
        """Hands every inbound message to the handler, in arrival order."""
        async for raw in client.messages:
            topic = raw.topic.value
            message = TextMessage.from_payload(topic, raw.payload)
            if message is None:
                logger.debug(f"Dropped empty or non UTF-8 payload on '{topic}'")
                continue
            try:
                await self.handler.on_message(message)
            except Exception:
                logger.exception(f"Message handler failed for topic '{topic}'")
