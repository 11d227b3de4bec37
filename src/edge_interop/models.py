"""
Data Models for Connection Configuration and MQTT Messages.

Defines the small set of value objects shared by the companion client,
the edge responder and the connection wrapper.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

ACK_SUFFIX = " - Received Ok"

DEFAULT_PORT = 1883
DEFAULT_RECONNECT_DELAY = 60.0


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True, kw_only=True)
class ConnectionConfig:
    """Broker endpoint, identity and topics. Resolved once at startup."""
    host: str
    port: int = DEFAULT_PORT
    client_id: Optional[str] = None
    publish_topic: str
    subscribe_topic: str
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY


@dataclass(frozen=True)
class TextMessage:
    """
    Represents one MQTT message (topic + UTF-8 text).

    The parameter names of to_aiomqtt_args() match aiomqtt's
    Client.publish, so the result can be spread directly into it.
    """
    topic: str
    text: str
    qos: int = 0
    retain: bool = False

    def to_bytes(self) -> bytes:
        """Converts the text to UTF-8 encoded bytes for MQTT."""
        return self.text.encode('utf-8')

    def to_aiomqtt_args(self) -> Dict[str, Any]:
        """Returns dict suitable for client.publish(**args)"""
        return {
            "topic": self.topic,
            "payload": self.to_bytes(),
            "qos": self.qos,
            "retain": self.retain,
        }

    @classmethod
    def from_payload(cls, topic: str, payload: Union[bytes, bytearray, str, None]) -> Optional["TextMessage"]:
        """
        Builds a message from a raw MQTT payload.

        Returns None for empty payloads and for payloads that are not
        valid UTF-8, so callers can drop them without raising.
        """
        if isinstance(payload, (bytes, bytearray)):
            try:
                text = bytes(payload).decode('utf-8')
            except UnicodeDecodeError:
                return None
        elif isinstance(payload, str):
            text = payload
        else:
            return None

        if not text:
            return None
        return cls(topic=topic, text=text)
