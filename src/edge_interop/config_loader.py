"""
Configuration Loader.

Responsible for reading the optional config.yaml file and resolving the
connection settings of both applications. A setting is looked up, in order,
in the command-line flags, the environment and the config file. The
companion client then falls back to prompting the operator, the edge
responder fails fast.
"""
import argparse
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import yaml

from edge_interop.models import ConnectionConfig, DEFAULT_PORT, DEFAULT_RECONNECT_DELAY

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = "EDGE_INTEROP_CONFIG"
DEFAULT_CONFIG_FILE = "config.yaml"
RECONNECT_DELAY_ENV = "RECONNECT_DELAY"


class ConfigurationError(Exception):
    """Raised when a required setting is missing or cannot be parsed."""

    def __init__(self, field: str, source: str, reason: str = "cannot be empty or null"):
        self.field = field
        self.source = source
        self.reason = reason
        super().__init__(f"{field} ({source}) {reason}")


def load_config(config_path: str = DEFAULT_CONFIG_FILE) -> Dict[str, Any]:
    """
    Loads the YAML configuration file.
    """
    path = Path(config_path)
    if not path.exists():
        logger.warning(f"Config file not found at {path}. Using defaults.")
        return {}

    try:
        with open(path, 'r') as f:
            config = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {path}")
            return config
    except Exception as e:
        logger.error(f"Failed to parse config file: {e}")
        raise


def file_setting(config: Dict[str, Any], section: str, key: str) -> Optional[str]:
    """Reads config[section][key] as a string, None when absent."""
    value = (config.get(section) or {}).get(key)
    if value is None:
        return None
    return str(value)


def resolve_setting(*candidates: Optional[str]) -> str:
    """Returns the first non-empty candidate (flag, env, file...), or ''."""
    for candidate in candidates:
        if candidate is not None and candidate.strip():
            return candidate.strip()
    return ""


def has_wildcard(topic: str) -> bool:
    """MQTT wildcards are only valid in subscriptions, never in a publish topic."""
    return "+" in topic or "#" in topic


def check_publish_topic(topic: str, source: str) -> str:
    if has_wildcard(topic):
        raise ConfigurationError("publish_topic", source, f"must not contain wildcards (+ or #), got '{topic}'")
    return topic


def parse_port(value: str) -> Optional[int]:
    """Returns the TCP port as int, None if it is not a valid port number."""
    try:
        port = int(value)
    except (TypeError, ValueError):
        return None
    if not 0 < port < 65536:
        return None
    return port


def prompt_until_value(question: str,
                       input_func: Callable[[], str] = input,
                       output: Callable[[str], None] = print) -> str:
    """
    Asks the operator the same question until a non-empty answer is given.
    """
    answer = ""
    while not answer.strip():
        output(question)
        answer = input_func()
    return answer


def _reconnect_delay(environ: Mapping[str, str], config: Dict[str, Any]) -> float:
    raw = resolve_setting(environ.get(RECONNECT_DELAY_ENV), file_setting(config, 'mqtt', 'reconnect_delay'))
    if not raw:
        return DEFAULT_RECONNECT_DELAY
    try:
        delay = float(raw)
    except ValueError:
        raise ConfigurationError("reconnect_delay", RECONNECT_DELAY_ENV, f"must be a number, got '{raw}'")
    if delay < 0:
        raise ConfigurationError("reconnect_delay", RECONNECT_DELAY_ENV, "must not be negative")
    return delay


# --- Companion client: flag > env > file > prompt ---

def resolve_companion_config(args: argparse.Namespace,
                             environ: Mapping[str, str],
                             input_func: Callable[[], str] = input,
                             output: Callable[[str], None] = print) -> ConnectionConfig:
    """
    Resolves the companion client's connection settings.

    Missing host, port or topics are asked for interactively; an empty
    answer (or a port that is not a number, or a publish topic with MQTT
    wildcards) repeats the question. A wildcard publish topic from a flag,
    the environment or the file raises ConfigurationError.
    """
    config = load_config(args.config or environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE))

    def resolve_or_prompt(question: str, *candidates: Optional[str]) -> str:
        value = resolve_setting(*candidates)
        if not value:
            value = prompt_until_value(question, input_func, output).strip()
        return value

    host = resolve_or_prompt("Please enter MQTT Connection String:",
                             args.connection_server,
                             environ.get("DEVICE_CONNECTION_STRING"),
                             file_setting(config, 'mqtt', 'host'))
    output(f"Using connection string: {host}")

    port = parse_port(resolve_setting(args.connection_port,
                                      environ.get("DEVICE_CONNECTION_PORT"),
                                      file_setting(config, 'mqtt', 'port')))
    while port is None:
        port = parse_port(prompt_until_value("Please enter MQTT Connection port:", input_func, output).strip())
    output(f"Using connection port: {port}")

    subscribe_topic = resolve_or_prompt("Please enter Subscribe topic:",
                                        args.sub_topic,
                                        environ.get("SUBSCRIBE_TOPIC"),
                                        file_setting(config, 'topics', 'subscribe'))
    output(f"Using Subscribe topic: {subscribe_topic}")

    publish_topic = resolve_setting(args.pub_topic,
                                    environ.get("PUBLISH_TOPIC"),
                                    file_setting(config, 'topics', 'publish'))
    if publish_topic:
        check_publish_topic(publish_topic, "PUBLISH_TOPIC")
    while not publish_topic:
        answer = prompt_until_value("Please enter Publish topic:", input_func, output).strip()
        if has_wildcard(answer):
            output("Publish topic cannot contain wildcards (+ or #)")
        else:
            publish_topic = answer
    output(f"Using Publish topic: {publish_topic}")

    # Optional, the broker assigns one when absent
    client_id = resolve_setting(args.client_id,
                                environ.get("CLIENT_ID"),
                                file_setting(config, 'mqtt', 'client_id')) or None

    return ConnectionConfig(host=host,
                            port=port,
                            client_id=client_id,
                            publish_topic=publish_topic,
                            subscribe_topic=subscribe_topic,
                            reconnect_delay=_reconnect_delay(environ, config))


# --- Edge responder: env > file > fail ---

def resolve_edge_config(environ: Mapping[str, str]) -> ConnectionConfig:
    """
    Resolves the edge responder's connection settings.

    Every value is required; the first missing one raises
    ConfigurationError naming it, before any connection is attempted.
    """
    config = load_config(environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE))

    def require(field: str, env_var: str, section: str, key: str, default: Optional[str] = None) -> str:
        value = resolve_setting(environ.get(env_var), file_setting(config, section, key), default)
        if not value:
            raise ConfigurationError(field, env_var)
        logger.info(f"Using {field} = {value}")
        return value

    host = require("bootstrap_servers", "BOOTSTRAP_SERVERS", 'mqtt', 'host')
    raw_port = require("bootstrap_port", "BOOTSTRAP_PORT", 'mqtt', 'port', default=str(DEFAULT_PORT))
    port = parse_port(raw_port)
    if port is None:
        raise ConfigurationError("bootstrap_port", "BOOTSTRAP_PORT", f"must be a port number, got '{raw_port}'")
    client_id = require("client_id", "CLIENT_ID", 'mqtt', 'client_id')
    subscribe_topic = require("subscribe_topic", "SUBSCRIBE_TOPIC", 'topics', 'subscribe')
    publish_topic = require("publish_topic", "PUBLISH_TOPIC", 'topics', 'publish')
    check_publish_topic(publish_topic, "PUBLISH_TOPIC")

    return ConnectionConfig(host=host,
                            port=port,
                            client_id=client_id,
                            publish_topic=publish_topic,
                            subscribe_topic=subscribe_topic,
                            reconnect_delay=_reconnect_delay(environ, config))
