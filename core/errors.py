# core/errors.py
"""
Exception hierarchy for the E3DC to MQTT bridge.

Errors are grouped by the side of the bridge that raises them:
- `E3dcError` for everything between the RSCP connection and a finished snapshot.
- `MqttError` for the broker connection and publishing.
- `ConfigError` for problems found while loading `config.ini`.

None of these are retried by the application. The main loop logs them and exits,
leaving the restart to the service supervisor (systemd, docker, ...).
"""
from typing import List, Optional


def format_tag(tag: int) -> str:
    """Renders an RSCP tag as `0x01800001 (25165825)` for log and error messages."""
    return f"0x{tag:08X} ({tag})"


class E3dcError(Exception):
    """Base class for errors raised while querying or decoding E3DC data."""


class ConnectionFailure(E3dcError):
    def __init__(self, host: str, reason: str):
        self.host = host
        self.reason = reason
        super().__init__(f"Connection to E3DC at {host} failed: {reason}")


class QueryFailure(E3dcError):
    """An RSCP round trip failed or came back without any data."""


class TagNotFoundError(E3dcError):
    def __init__(self, tag: int):
        self.tag = tag
        super().__init__(f"Missing tag {format_tag(tag)} in response")


class MissingValueError(E3dcError):
    def __init__(self, tag: int):
        self.tag = tag
        super().__init__(f"Missing data for tag {format_tag(tag)}")


class TypeMismatchError(E3dcError):
    """A tagged value could not be coerced to the requested representation."""


class MqttError(Exception):
    """Base class for errors raised by the MQTT side of the bridge."""


class PublishFailure(MqttError):
    def __init__(self, topic: str, reason: str):
        self.topic = topic
        self.reason = reason
        super().__init__(f"Failed to publish to topic '{topic}': {reason}")


class SerializationFailure(MqttError):
    """A record could not be serialized into an MQTT payload."""


class MqttClientError(MqttError):
    """The broker connection could not be established or was lost."""


class ConfigError(Exception):
    """Base class for configuration problems."""


class ConfigFileNotFoundError(ConfigError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Config file not found at {path}")


class ConfigValidationError(ConfigError):
    def __init__(self, errors: List[str], message: Optional[str] = None):
        self.errors = errors
        super().__init__(message or "Configuration errors: " + "; ".join(errors))
