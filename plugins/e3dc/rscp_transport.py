# plugins/e3dc/rscp_transport.py
"""
E3DC RSCP Local Transport

Implements the `ProtocolProvider` interface on top of pye3dc's local RSCP client
(`E3DC_RSCP_local`), which handles the AES framing and the login handshake on
TCP port 5033 of the storage system.

Responsibilities of this module:
- Pre-connection TCP check, then a single authenticated session kept open for
  the lifetime of the process
- Conversion between `TaggedItem` trees and pye3dc's `(tag, type, value)` tuples
- Mapping of pye3dc and socket exceptions onto `ConnectionFailure`/`QueryFailure`
  (`CommunicationError` wraps every socket or framing failure inside pye3dc)

pye3dc answers one top-level item per round trip, so a request of N items costs
N round trips over the same session. The response timestamp is taken when the
last answer arrives.
"""
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence, Tuple

from e3dc._e3dc_rscp_local import (
    CommunicationError,
    E3DC_RSCP_local,
    RSCPAuthenticationError,
    RSCPKeyError,
    RSCPNotAvailableError,
)
from e3dc._rscpTags import RscpTag, RscpType

from core.errors import ConnectionFailure, QueryFailure, format_tag
from plugins.plugin_interface import ProtocolProvider, Response
from plugins.plugin_utils import check_tcp_port
from plugins.e3dc.rscp_values import DynamicValue, TaggedItem, ValueKind

RSCP_PORT = 5033

_SIGNED_TYPES = {8: RscpType.Char8, 16: RscpType.Int16, 32: RscpType.Int32, 64: RscpType.Int64}
_UNSIGNED_TYPES = {8: RscpType.UChar8, 16: RscpType.Uint16, 32: RscpType.Uint32, 64: RscpType.Uint64}
_SIGNED_WIDTHS = {"Char8": 8, "Int16": 16, "Int32": 32, "Int64": 64}
_UNSIGNED_WIDTHS = {"UChar8": 8, "Uint16": 16, "Uint32": 32, "Uint64": 64}


def _tag_code(tag: Any) -> int:
    if isinstance(tag, RscpTag):
        return tag.value
    if isinstance(tag, str):
        if tag in RscpTag.__members__:
            return RscpTag[tag].value
        return int(tag, 16)
    return int(tag)


def _type_name(rscp_type: Any) -> str:
    if isinstance(rscp_type, RscpType):
        return rscp_type.name
    if isinstance(rscp_type, str):
        return rscp_type
    return RscpType(rscp_type).name


def _request_tag(code: int) -> Any:
    try:
        return RscpTag(code)
    except ValueError:
        return code


def encode_item(item: TaggedItem) -> Tuple[Any, RscpType, Any]:
    """
    Converts a request item into the tuple form accepted by `E3DC_RSCP_local.sendRequest`.

    Known tags are passed as `RscpTag` members, unknown ones as raw codes.
    """
    tag = _request_tag(item.tag)
    value = item.value
    if value is None:
        return (tag, RscpType.NoneType, None)
    if value.kind == ValueKind.CONTAINER:
        return (tag, RscpType.Container, [encode_item(child) for child in value.children])
    if value.kind == ValueKind.BOOL:
        return (tag, RscpType.Bool, value.data)
    if value.kind == ValueKind.SIGNED_INT:
        return (tag, _SIGNED_TYPES[value.width], value.data)
    if value.kind == ValueKind.UNSIGNED_INT:
        return (tag, _UNSIGNED_TYPES[value.width], value.data)
    if value.kind == ValueKind.FLOAT32:
        return (tag, RscpType.Float32, value.data)
    if value.kind == ValueKind.FLOAT64:
        return (tag, RscpType.Double64, value.data)
    return (tag, RscpType.CString, value.data)


def decode_item(raw: Tuple[Any, Any, Any], logger: Optional[logging.Logger] = None) -> TaggedItem:
    """
    Converts a decoded pye3dc tuple into a `TaggedItem`.

    An `Error` item nested inside a container becomes a valueless item, so a
    lookup of that field fails with `MissingValueError` while optional entries
    (such as individual system specs) can still be skipped. pye3dc itself raises
    for a top-level error answer, so those never get here.
    """
    tag = _tag_code(raw[0])
    type_name = _type_name(raw[1])
    data = raw[2]

    if type_name == "NoneType":
        return TaggedItem(tag)
    if type_name == "Error":
        if logger:
            logger.debug(f"RSCP: Device reported error {data!r} for nested tag {format_tag(tag)}")
        return TaggedItem(tag)
    if type_name == "Container":
        return TaggedItem(tag, DynamicValue.container([decode_item(child, logger) for child in data or []]))
    if type_name == "Bool":
        return TaggedItem(tag, DynamicValue.boolean(bool(data)))
    if type_name in _SIGNED_WIDTHS:
        return TaggedItem(tag, DynamicValue.signed(int(data), _SIGNED_WIDTHS[type_name]))
    if type_name in _UNSIGNED_WIDTHS:
        return TaggedItem(tag, DynamicValue.unsigned(int(data), _UNSIGNED_WIDTHS[type_name]))
    if type_name == "Float32":
        return TaggedItem(tag, DynamicValue.float32(data))
    if type_name == "Double64":
        return TaggedItem(tag, DynamicValue.float64(data))
    if type_name == "Timestamp":
        seconds = data.timestamp() if isinstance(data, datetime) else data
        return TaggedItem(tag, DynamicValue.float64(seconds))
    if isinstance(data, (bytes, bytearray)):
        return TaggedItem(tag, DynamicValue.text(data.hex()))
    return TaggedItem(tag, DynamicValue.text(str(data)))


class RscpTransport(ProtocolProvider):
    """
    Local RSCP connection to an E3DC storage system.

    The connection is opened once by `connect()` and kept alive. There is no
    automatic reconnect: any failed round trip raises and the caller is expected
    to terminate.
    """

    def __init__(self, host: str, username: str, password: str, key: str,
                 main_logger: Optional[logging.Logger] = None, port: int = RSCP_PORT):
        super().__init__(host, main_logger or logging.getLogger(__name__))
        self.port = port
        self._username = username
        self._password = password
        self._key = key
        self.client: Optional[E3DC_RSCP_local] = None

    @property
    def name(self) -> str:
        return "rscp_local"

    @property
    def is_connected(self) -> bool:
        return self._is_connected_flag and self.client is not None and self.client.isConnected()

    def connect(self) -> None:
        self.logger.info(f"RSCP: Performing pre-connection network check for {self.host}:{self.port}...")
        port_open, rtt_ms, err_msg = check_tcp_port(self.host, self.port, logger_instance=self.logger)
        if not port_open:
            raise ConnectionFailure(self.host, f"TCP port {self.port} is not reachable ({err_msg})")

        self.logger.info(f"RSCP: Port open (latency {rtt_ms:.1f} ms). Logging in as '{self._username}'...")
        try:
            self.client = E3DC_RSCP_local(self._username, self._password, self.host, self._key)
            self.client.connect()
        except RSCPAuthenticationError as e:
            raise ConnectionFailure(self.host, f"authentication rejected: {e}") from e
        except RSCPKeyError as e:
            raise ConnectionFailure(self.host, f"RSCP key mismatch: {e}") from e
        except (CommunicationError, RSCPNotAvailableError, OSError) as e:
            raise ConnectionFailure(self.host, str(e) or type(e).__name__) from e

        self._is_connected_flag = True
        self.logger.info(f"RSCP: Connected to E3DC at {self.host}.")

    def disconnect(self) -> None:
        if self.client is not None and self._is_connected_flag:
            self.logger.info("RSCP: Disconnecting from E3DC...")
            try:
                self.client.disconnect()
            except OSError as e:
                self.logger.warning(f"RSCP: Error while disconnecting: {e}")
        self._is_connected_flag = False

    def send(self, items: Sequence[TaggedItem]) -> Response:
        if not self.is_connected:
            raise QueryFailure("RSCP connection is not open")

        decoded: List[TaggedItem] = []
        for item in items:
            try:
                raw = self.client.sendRequest(encode_item(item))
            except (CommunicationError, RSCPNotAvailableError, RSCPKeyError, RSCPAuthenticationError, OSError) as e:
                raise QueryFailure(f"Request for tag {format_tag(item.tag)} failed: {e!r}") from e
            decoded.append(decode_item(raw, self.logger))

        if not decoded:
            raise QueryFailure("Response has no data")
        return Response(items=decoded, timestamp=datetime.now(timezone.utc))
