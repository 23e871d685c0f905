# plugins/plugin_interface.py
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Sequence, TYPE_CHECKING
import logging # Use standard logging

if TYPE_CHECKING:
    from plugins.e3dc.rscp_values import TaggedItem


@dataclass
class Response:
    """
    The decoded answer to one `send()` call.

    `items` holds one response item per request item, in request order.
    `timestamp` is the UTC time the answer was received and becomes the
    `time_stamp` of every snapshot built from it.
    """
    items: List['TaggedItem']
    timestamp: datetime


class ProtocolProvider(ABC):
    """
    Abstract Base Class for the request/response transport to an E3DC system.

    The snapshot assembler only ever talks to the device through this interface,
    which keeps the RSCP framing, encryption and socket handling out of the
    domain code and lets the tests answer requests from in-memory item trees.

    Implementations are synchronous and fail fast: errors surface as
    `ConnectionFailure` or `QueryFailure` and are never retried here.
    """
    def __init__(self, host: str, main_logger: logging.Logger):
        self.host = host
        self.logger = main_logger
        self._is_connected_flag: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Return a short name for the transport (e.g., 'rscp_local')."""
        pass

    @property
    def is_connected(self) -> bool:
        return self._is_connected_flag

    @abstractmethod
    def connect(self) -> None:
        """
        Establish and authenticate the connection.
        MUST set self._is_connected_flag = True on success and raise
        ConnectionFailure otherwise.
        """
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """
        Close the connection.
        MUST set self._is_connected_flag = False. Safe to call when not connected.
        """
        pass

    @abstractmethod
    def send(self, items: Sequence['TaggedItem']) -> Response:
        """
        Send a request tree and wait for the matching response tree.
        Raises QueryFailure when the round trip fails or the device reports an error.
        """
        pass
