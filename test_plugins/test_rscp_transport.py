#!/usr/bin/env python3
"""
Test suite for the local RSCP transport.

Most tests patch out pye3dc's `E3DC_RSCP_local` and the TCP pre-check and
cover the conversion to and from pye3dc tuples and the mapping of failures
onto `ConnectionFailure`/`QueryFailure`. `TestLibraryFailurePaths` runs the
real client object into its socket failure paths.

Usage:
    python test_plugins/test_rscp_transport.py
"""

import sys
import os
import unittest
from datetime import datetime, timezone
from unittest.mock import patch

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from e3dc._e3dc_rscp_local import (
    CommunicationError,
    E3DC_RSCP_local,
    RSCPAuthenticationError,
    RSCPNotAvailableError,
)
from e3dc._rscpTags import RscpTag, RscpType

from core.errors import ConnectionFailure, QueryFailure
from plugins.e3dc.rscp_transport import RscpTransport, decode_item, encode_item
from plugins.e3dc.rscp_values import DynamicValue, TaggedItem, ValueKind

TAG_REQ = 0x01000001
TAG_RESP = 0x01800001


def code(tag) -> int:
    return tag.value if isinstance(tag, RscpTag) else tag


def codes(raw):
    """Replaces `RscpTag` members in an encoded tuple by their integer codes."""
    tag, rscp_type, data = raw
    if rscp_type == RscpType.Container:
        data = [codes(child) for child in data]
    return (code(tag), rscp_type, data)


class TestEncodeItem(unittest.TestCase):

    def test_valueless_request(self):
        encoded = encode_item(TaggedItem(RscpTag.EMS_REQ_POWER_PV.value))
        self.assertEqual(encoded, (RscpTag.EMS_REQ_POWER_PV, RscpType.NoneType, None))

    def test_unknown_tag_stays_numeric(self):
        self.assertEqual(encode_item(TaggedItem(0x7F7F7F7F)), (0x7F7F7F7F, RscpType.NoneType, None))

    def test_scalars(self):
        self.assertEqual(codes(encode_item(TaggedItem(TAG_REQ, DynamicValue.unsigned(3, 16)))),
                         (TAG_REQ, RscpType.Uint16, 3))
        self.assertEqual(codes(encode_item(TaggedItem(TAG_REQ, DynamicValue.signed(-3, 8)))),
                         (TAG_REQ, RscpType.Char8, -3))
        self.assertEqual(codes(encode_item(TaggedItem(TAG_REQ, DynamicValue.boolean(True)))),
                         (TAG_REQ, RscpType.Bool, True))
        self.assertEqual(codes(encode_item(TaggedItem(TAG_REQ, DynamicValue.float64(1.5)))),
                         (TAG_REQ, RscpType.Double64, 1.5))
        self.assertEqual(codes(encode_item(TaggedItem(TAG_REQ, DynamicValue.text("x")))),
                         (TAG_REQ, RscpType.CString, "x"))

    def test_container(self):
        request = TaggedItem(TAG_REQ, DynamicValue.container([
            TaggedItem(0x03040001, DynamicValue.unsigned(0, 16)),
            TaggedItem(0x03040002),
        ]))
        self.assertEqual(codes(encode_item(request)), (TAG_REQ, RscpType.Container, [
            (0x03040001, RscpType.Uint16, 0),
            (0x03040002, RscpType.NoneType, None),
        ]))


class TestDecodeItem(unittest.TestCase):

    def test_enum_and_name_forms(self):
        item = decode_item((TAG_RESP, RscpType.Int32, -1500))
        self.assertEqual(item.tag, TAG_RESP)
        self.assertEqual(item.value, DynamicValue.signed(-1500, 32))

        by_name = decode_item((RscpTag.EMS_POWER_PV.name, "Uint32", 4000))
        self.assertEqual(by_name.tag, RscpTag.EMS_POWER_PV.value)
        self.assertEqual(by_name.value, DynamicValue.unsigned(4000, 32))

    def test_floats(self):
        self.assertEqual(decode_item((TAG_RESP, RscpType.Float32, 0.1)).value.kind, ValueKind.FLOAT32)
        self.assertEqual(decode_item((TAG_RESP, RscpType.Double64, 0.1)).value, DynamicValue.float64(0.1))

    def test_timestamp_and_bytes(self):
        when = datetime(2024, 6, 1, tzinfo=timezone.utc)
        self.assertEqual(decode_item((TAG_RESP, RscpType.Timestamp, when)).value,
                         DynamicValue.float64(1717200000.0))
        self.assertEqual(decode_item((TAG_RESP, RscpType.ByteArray, b"\x01\xff")).value,
                         DynamicValue.text("01ff"))

    def test_nested_error_becomes_valueless(self):
        item = decode_item((TAG_RESP, RscpType.Container, [
            (0x03800001, RscpType.Uint16, 0),
            (0x03800002, RscpType.Error, 6),
            (0x03800003, RscpType.NoneType, None),
        ]))
        children = item.value.children
        self.assertEqual(len(children), 3)
        self.assertIsNotNone(children[0].value)
        self.assertIsNone(children[1].value)
        self.assertIsNone(children[2].value)


class TestRscpTransport(unittest.TestCase):

    def setUp(self):
        port_patcher = patch("plugins.e3dc.rscp_transport.check_tcp_port", return_value=(True, 1.5, None))
        client_patcher = patch("plugins.e3dc.rscp_transport.E3DC_RSCP_local")
        self.mock_check = port_patcher.start()
        self.mock_client_class = client_patcher.start()
        self.addCleanup(port_patcher.stop)
        self.addCleanup(client_patcher.stop)

        self.rscp = self.mock_client_class.return_value
        self.rscp.isConnected.return_value = True
        self.transport = RscpTransport("192.0.2.10", "user", "secret", "key")

    def test_connect_and_send(self):
        self.transport.connect()
        self.mock_client_class.assert_called_once_with("user", "secret", "192.0.2.10", "key")
        self.assertTrue(self.transport.is_connected)

        self.rscp.sendRequest.side_effect = [
            (TAG_RESP, RscpType.Uint32, 4000),
            (0x01800002, RscpType.Int32, -1500),
        ]
        response = self.transport.send([TaggedItem(TAG_REQ), TaggedItem(0x01000002)])
        self.assertEqual([item.tag for item in response.items], [TAG_RESP, 0x01800002])
        self.assertEqual(response.timestamp.tzinfo, timezone.utc)
        self.assertEqual(self.rscp.sendRequest.call_count, 2)

    def test_closed_port(self):
        self.mock_check.return_value = (False, -1.0, "Timeout")
        with self.assertRaises(ConnectionFailure) as ctx:
            self.transport.connect()
        self.assertIn("Timeout", str(ctx.exception))
        self.mock_client_class.assert_not_called()

    def test_login_rejected(self):
        self.rscp.connect.side_effect = RSCPAuthenticationError("Login data are wrong")
        with self.assertRaises(ConnectionFailure):
            self.transport.connect()
        self.assertFalse(self.transport.is_connected)

    def test_send_requires_connection(self):
        with self.assertRaises(QueryFailure):
            self.transport.send([TaggedItem(TAG_REQ)])

    def test_communication_error_is_query_failure(self):
        self.transport.connect()
        self.rscp.sendRequest.side_effect = CommunicationError()
        with self.assertRaises(QueryFailure):
            self.transport.send([TaggedItem(TAG_REQ)])

    def test_communication_error_on_login_is_connection_failure(self):
        self.rscp.connect.side_effect = CommunicationError()
        with self.assertRaises(ConnectionFailure):
            self.transport.connect()

    def test_library_error_is_query_failure(self):
        self.transport.connect()
        self.rscp.sendRequest.side_effect = RSCPNotAvailableError("not available")
        with self.assertRaises(QueryFailure):
            self.transport.send([TaggedItem(TAG_REQ)])

    def test_empty_request(self):
        self.transport.connect()
        with self.assertRaises(QueryFailure):
            self.transport.send([])

    def test_disconnect(self):
        self.transport.connect()
        self.transport.disconnect()
        self.rscp.disconnect.assert_called_once()
        self.assertFalse(self.transport.is_connected)
        # second call is a no-op
        self.transport.disconnect()
        self.rscp.disconnect.assert_called_once()


class TestLibraryFailurePaths(unittest.TestCase):
    """Runs pye3dc's real `E3DC_RSCP_local` into its failure paths, without a device."""

    def setUp(self):
        port_patcher = patch("plugins.e3dc.rscp_transport.check_tcp_port", return_value=(True, 0.5, None))
        port_patcher.start()
        self.addCleanup(port_patcher.stop)

    def test_send_without_socket_is_query_failure(self):
        transport = RscpTransport("192.0.2.10", "user", "secret", "key")
        # login skipped: the session object exists but has no socket
        with patch.object(E3DC_RSCP_local, "connect"), \
                patch.object(E3DC_RSCP_local, "isConnected", return_value=True):
            transport.connect()
            with self.assertRaises(QueryFailure) as ctx:
                transport.send([TaggedItem(TAG_REQ)])
        self.assertIsInstance(ctx.exception.__cause__, CommunicationError)

    def test_refused_socket_is_connection_failure(self):
        transport = RscpTransport("127.0.0.1", "user", "secret", "key")
        with self.assertRaises(ConnectionFailure) as ctx:
            transport.connect()
        self.assertIsInstance(ctx.exception.__cause__, CommunicationError)
        self.assertFalse(transport.is_connected)


if __name__ == '__main__':
    unittest.main(verbosity=2)
