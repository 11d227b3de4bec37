"""
Main entry point for the Edge Responder application.

This module is responsible for:
- Resolving the configuration from the environment (fail fast, no prompts).
- Wiring the EdgeResponder handler into the managed MQTT connection.
- Managing the overall application lifecycle (start, signals, stop).
"""
import asyncio
import logging
import os
import signal
from typing import Mapping, Optional

from edge_interop.config_loader import ConfigurationError, resolve_edge_config
from edge_interop.connection import ManagedMQTTClient
from edge_interop.edge.responder import EdgeResponder
from edge_interop.logs import setup_logging

logger = logging.getLogger(__name__)


async def shutdown(signal_name: str, mqtt_client: ManagedMQTTClient, stopping: asyncio.Event):
    """Graceful shutdown handler."""
    logger.info(f"Received exit signal {signal_name}...")
    await mqtt_client.stop()
    stopping.set()


async def main_application_runner(environ: Optional[Mapping[str, str]] = None) -> int:
    """
    Runs the responder until SIGINT/SIGTERM. Returns the process exit code.
    """
    logger.info("Starting EdgeInterop module")
    if environ is None:
        environ = os.environ

    try:
        config = resolve_edge_config(environ)
    except ConfigurationError as e:
        logger.error(f"{e}")
        return 1

    responder = EdgeResponder(publish_topic=config.publish_topic)
    mqtt_client = ManagedMQTTClient(config, handler=responder)
    # Inversion of control: the responder publishes through the connection's queue
    responder.publish_callback = mqtt_client.enqueue

    await mqtt_client.subscribe(config.subscribe_topic)
    await mqtt_client.start()

    loop = asyncio.get_running_loop()
    stopping = asyncio.Event()
    # Strong references so a pending shutdown task is not garbage-collected
    shutdown_tasks = set()

    def request_shutdown(sig: signal.Signals):
        task = asyncio.create_task(shutdown(sig.name, mqtt_client, stopping))
        shutdown_tasks.add(task)
        task.add_done_callback(shutdown_tasks.discard)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, request_shutdown, sig)

    logger.info("Edge responder is fully operational. Press Ctrl+C to exit.")

    try:
        await stopping.wait()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await mqtt_client.stop()
    return 0


def main() -> int:
    setup_logging()
    try:
        return asyncio.run(main_application_runner())
    except KeyboardInterrupt:
        # Handled by the signal handler, but good to catch here just in case.
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
