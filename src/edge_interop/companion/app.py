"""
Companion Client.

Interactive request/response exerciser for the edge responder. The operator
picks from a numbered menu:

- (1) Publish: send a message to the publish topic, then listen on the
  subscribe topic for REPLY_WINDOW_MS to see the acknowledgment.
- (2) Subscribe: listen on the subscribe topic until Ctrl+C.
- (3) Exit.

The reply window is not a real request/reply exchange. There is no
correlation identifier, so any message arriving on the subscribe topic
during the window is printed as if it were the reply.

Console input is read on a daemon thread so that message delivery keeps
running while the operator is typing.
"""
import argparse
import asyncio
import contextlib
import functools
import logging
import os
import signal
import threading
from typing import Callable, Optional, TypeVar

from edge_interop.config_loader import ConfigurationError, prompt_until_value, resolve_companion_config
from edge_interop.connection import ConnectionHandler, ManagedMQTTClient
from edge_interop.logs import setup_logging
from edge_interop.models import ConnectionConfig, TextMessage

logger = logging.getLogger(__name__)

T = TypeVar("T")

REPLY_WINDOW_MS = 5000
CONNECT_GRACE_SECONDS = 3.0

MENU = "\n".join([
    "------------------",
    "(1) Publish",
    "(2) Subscribe",
    "(3) Exit",
    "------------------",
    "Please enter mode:",
])


class CompanionHandler(ConnectionHandler):
    """Surfaces connection status and incoming messages to the operator."""

    def __init__(self, output: Callable[[str], None] = print):
        self.output = output

    async def on_connected(self):
        self.output("MQTT Broker connected")

    async def on_disconnected(self, error):
        self.output("MQTT Broker disconnected")

    async def on_connect_failed(self, error):
        self.output("MQTT Broker connection failed check network or broker!")

    async def on_message(self, message: TextMessage):
        self.output(f"Incoming message - {message.text}")


async def console_call(func: Callable[[], T]) -> T:
    """
    Runs a blocking console read on a daemon thread and awaits its result.

    A daemon thread (rather than the default executor) so that a read still
    blocked on stdin never keeps the process alive after exit.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def deliver(setter, value):
        if not future.done():
            setter(value)

    def worker():
        try:
            result = func()
        except Exception as e:
            loop.call_soon_threadsafe(deliver, future.set_exception, e)
        else:
            loop.call_soon_threadsafe(deliver, future.set_result, result)

    threading.Thread(target=worker, name="console-input", daemon=True).start()
    return await future


@contextlib.contextmanager
def cancel_on_interrupt(cancelled: asyncio.Event):
    """
    Routes SIGINT to `cancelled` for the duration of the block, then puts
    the previous SIGINT handler back.
    """
    loop = asyncio.get_running_loop()
    previous = signal.getsignal(signal.SIGINT)
    try:
        loop.add_signal_handler(signal.SIGINT, cancelled.set)
        installed = True
    except (NotImplementedError, RuntimeError):
        # Windows event loops / non-main threads: Ctrl+C ends the process instead
        logger.debug("SIGINT cannot be routed to the listen window on this platform.")
        installed = False
    try:
        yield cancelled
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)
            if previous is not None:
                signal.signal(signal.SIGINT, previous)


class CompanionApp:
    config: ConnectionConfig
    mqtt_client: ManagedMQTTClient
    reply_window_ms: int = REPLY_WINDOW_MS

    def __init__(self,
                 config: ConnectionConfig,
                 mqtt_client: Optional[ManagedMQTTClient] = None,
                 input_func: Callable[[], str] = input,
                 output: Callable[[str], None] = print):
        self.config = config
        self.input_func = input_func
        self.output = output
        self.mqtt_client = mqtt_client or ManagedMQTTClient(config, handler=CompanionHandler(output))

    def publish(self, topic: str, text: str) -> bool:
        """
        Sends `text` on `topic`. While the broker is down this reports the
        failure and leaves the message queued for delivery after reconnect.
        """
        if self.mqtt_client.enqueue(topic, text):
            self.output(f"Published message - Topic: {topic} - Message: {text}")
            return True
        self.output(f"MQTT Broker not connected - message for {topic} queued until reconnect")
        return False

    async def listen(self, topic: str, timeout_ms: int, cancelled: Optional[asyncio.Event] = None):
        """
        Subscribes to `topic` until `cancelled` is set or, when timeout_ms > 0,
        until the timeout elapses. Always unsubscribes on the way out.
        """
        if cancelled is None:
            cancelled = asyncio.Event()

        await self.mqtt_client.subscribe(topic)
        try:
            if timeout_ms > 0:
                try:
                    await asyncio.wait_for(cancelled.wait(), timeout_ms / 1000)
                except asyncio.TimeoutError:
                    pass
            else:
                await cancelled.wait()
        finally:
            await self.mqtt_client.unsubscribe(topic)

    async def listen_until_interrupted(self, topic: str, timeout_ms: int):
        with cancel_on_interrupt(asyncio.Event()) as cancelled:
            await self.listen(topic, timeout_ms, cancelled)

    async def publish_message(self):
        """Asks for a message, publishes it and watches for the reply."""
        ask = functools.partial(prompt_until_value, "Please enter mesage to send:", self.input_func, self.output)
        text = await console_call(ask)
        self.publish(self.config.publish_topic, text)

        await self.listen_until_interrupted(self.config.subscribe_topic, self.reply_window_ms)

    async def run(self):
        """The menu loop. Owns the connection from start to stop."""
        await self.mqtt_client.start()
        try:
            if not await self.mqtt_client.wait_connected(CONNECT_GRACE_SECONDS):
                logger.warning("Broker not reachable yet, continuing; messages are queued until it is.")

            while True:
                self.output(MENU)
                mode = (await console_call(self.input_func)).strip()

                if mode == "1":
                    await self.publish_message()
                elif mode == "2":
                    await self.listen_until_interrupted(self.config.subscribe_topic, 0)
                elif mode == "3":
                    return
                else:
                    self.output("Error - Incorrect mode:")
        except EOFError:
            logger.info("Console input closed, exiting.")
        finally:
            await self.mqtt_client.stop()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="edge-interop-companion",
        description="Companion app to communicate with the edge MQTT broker.")
    parser.add_argument("-x", "--connectionServer", dest="connection_server", help="MQTT broker host")
    parser.add_argument("-p", "--connectionPort", dest="connection_port", help="MQTT broker port")
    parser.add_argument("-t", "--pubTopic", dest="pub_topic", help="Publishing topic")
    parser.add_argument("-s", "--subTopic", dest="sub_topic", help="Subscribe topic")
    parser.add_argument("-c", "--clientId", dest="client_id", help="MQTT client identifier (optional)")
    parser.add_argument("--config", dest="config", help="Path to a YAML config file")
    return parser


def main(argv=None) -> int:
    setup_logging()
    args = build_parser().parse_args(argv)

    try:
        config = resolve_companion_config(args, os.environ)
    except ConfigurationError as e:
        logger.error(f"{e}")
        return 1
    except EOFError:
        logger.error("Console input closed before the configuration was complete.")
        return 1

    try:
        asyncio.run(CompanionApp(config).run())
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
