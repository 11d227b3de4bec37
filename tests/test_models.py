import dataclasses

import pytest

from edge_interop.models import ConnectionConfig, ConnectionState, TextMessage


def test_text_message_publish_args_match_aiomqtt():
    message = TextMessage(topic="companion/out", text="héllo")
    assert message.to_aiomqtt_args() == {
        "topic": "companion/out",
        "payload": "héllo".encode("utf-8"),
        "qos": 0,
        "retain": False,
    }


def test_payload_round_trips_unchanged():
    original = TextMessage(topic="t", text="ping ✓")
    received = TextMessage.from_payload("t", original.to_bytes())
    assert received == original


@pytest.mark.parametrize("payload", [b"", "", None, b"\xc3\x28", bytearray(b"\xff")])
def test_malformed_or_empty_payload_is_rejected(payload):
    assert TextMessage.from_payload("t", payload) is None


def test_from_payload_accepts_str_and_bytearray():
    assert TextMessage.from_payload("t", "text").text == "text"
    assert TextMessage.from_payload("t", bytearray(b"text")).text == "text"


def test_connection_config_is_immutable():
    config = ConnectionConfig(host="h", publish_topic="out", subscribe_topic="in")
    assert config.port == 1883
    assert config.client_id is None
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.host = "other"


def test_connection_state_values():
    assert [state.value for state in ConnectionState] == ["disconnected", "connecting", "connected"]
