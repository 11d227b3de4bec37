"""
Edge Responder.

Stateless acknowledgment service: every message received on the inbound
topic is republished on the outbound topic with ACK_SUFFIX appended.
Messages are handled one at a time in arrival order; the same inbound
message delivered twice is acknowledged twice. Empty and non UTF-8
payloads never reach the responder (TextMessage.from_payload drops them).
"""
import logging
from typing import Callable, Optional

from edge_interop.connection import ConnectionHandler
from edge_interop.models import ACK_SUFFIX, TextMessage

logger = logging.getLogger(__name__)


def build_acknowledgment(text: str) -> str:
    """'ping' -> 'ping - Received Ok'"""
    return f"{text}{ACK_SUFFIX}"


class EdgeResponder(ConnectionHandler):
    publish_topic: str
    publish_callback: Optional[Callable[[str, str], bool]]

    def __init__(self, publish_topic: str, publish_callback: Optional[Callable[[str, str], bool]] = None):
        self.publish_topic = publish_topic
        # Set by main once the connection exists (ManagedMQTTClient.enqueue)
        self.publish_callback = publish_callback

    async def on_connected(self):
        logger.info("MQTT Broker connected")

    async def on_disconnected(self, error):
        logger.warning("MQTT Broker disconnected")

    async def on_connect_failed(self, error):
        logger.error("MQTT Broker connection failed check network or broker!")

    async def on_message(self, message: TextMessage):
        if self.publish_callback is None:
            raise RuntimeError("EdgeResponder has no publish_callback; wire it before starting the connection")

        logger.info(f"Incoming message - {message.text}")
        self.publish_callback(self.publish_topic, build_acknowledgment(message.text))
        logger.info("MQTT application message is published.")
