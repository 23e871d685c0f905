#!/usr/bin/env python3
"""
Test suite for RSCP tagged values and the tag-tree lookups.

Covers:
- DynamicValue construction and width checks
- The four coercions (string, float, unsigned integer, bool)
- find/get helpers over item lists, including error cases

Usage:
    python test_plugins/test_rscp_values.py
"""

import sys
import os
import math
import unittest

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.errors import MissingValueError, TagNotFoundError, TypeMismatchError
from plugins.e3dc.rscp_values import (
    DynamicValue,
    TaggedItem,
    ValueKind,
    to_bool,
    to_float,
    to_string,
    to_uint,
)
from plugins.e3dc.rscp_navigator import (
    container_items,
    find_item,
    find_value,
    get_bool,
    get_integer,
    get_items,
    get_items_with_tag,
    get_number,
    get_string,
)


class TestDynamicValue(unittest.TestCase):
    """Construction rules for DynamicValue."""

    def test_integer_width_bounds(self):
        self.assertEqual(DynamicValue.signed(-128, 8).data, -128)
        self.assertEqual(DynamicValue.unsigned(255, 8).data, 255)
        with self.assertRaises(ValueError):
            DynamicValue.signed(128, 8)
        with self.assertRaises(ValueError):
            DynamicValue.unsigned(-1, 16)
        with self.assertRaises(ValueError):
            DynamicValue.unsigned(1, 24)

    def test_float32_is_normalized(self):
        value = DynamicValue.float32(0.1)
        self.assertEqual(value.kind, ValueKind.FLOAT32)
        self.assertNotEqual(value.data, 0.1)
        self.assertAlmostEqual(value.data, 0.1, places=7)

    def test_scalar_has_no_children(self):
        self.assertEqual(DynamicValue.signed(5).children, [])
        child = TaggedItem(1, DynamicValue.boolean(True))
        self.assertEqual(DynamicValue.container([child]).children, [child])


class TestCoercions(unittest.TestCase):
    """Coercions convert losslessly or raise TypeMismatchError."""

    def test_to_string(self):
        self.assertEqual(to_string(DynamicValue.text("S10 E")), "S10 E")
        self.assertEqual(to_string(DynamicValue.boolean(True)), "true")
        self.assertEqual(to_string(DynamicValue.boolean(False)), "false")
        self.assertEqual(to_string(DynamicValue.signed(-42)), "-42")
        self.assertEqual(to_string(DynamicValue.unsigned(42)), "42")
        self.assertEqual(to_string(DynamicValue.float32(0.1)), "0.1")
        self.assertEqual(to_string(DynamicValue.float64(42.0)), "42")
        with self.assertRaises(TypeMismatchError):
            to_string(DynamicValue.container([]))

    def test_to_float(self):
        self.assertEqual(to_float(DynamicValue.boolean(True)), 1.0)
        self.assertEqual(to_float(DynamicValue.boolean(False)), 0.0)
        self.assertEqual(to_float(DynamicValue.signed(-1500)), -1500.0)
        self.assertEqual(to_float(DynamicValue.float64(2.5)), 2.5)
        with self.assertRaises(TypeMismatchError):
            to_float(DynamicValue.text("12"))

    def test_to_uint(self):
        self.assertEqual(to_uint(DynamicValue.signed(7)), 7)
        self.assertEqual(to_uint(DynamicValue.float64(3.9)), 3)
        self.assertEqual(to_uint(DynamicValue.boolean(True)), 1)
        with self.assertRaises(TypeMismatchError):
            to_uint(DynamicValue.signed(-1))
        with self.assertRaises(TypeMismatchError):
            to_uint(DynamicValue.float64(-0.5))
        with self.assertRaises(TypeMismatchError):
            to_uint(DynamicValue.float64(math.nan))
        with self.assertRaises(TypeMismatchError):
            to_uint(DynamicValue.float64(2.0 ** 64))

    def test_to_bool(self):
        self.assertTrue(to_bool(DynamicValue.signed(-3)))
        self.assertFalse(to_bool(DynamicValue.unsigned(0)))
        self.assertFalse(to_bool(DynamicValue.float64(1e-12)))
        self.assertTrue(to_bool(DynamicValue.float32(1.0)))
        with self.assertRaises(TypeMismatchError):
            to_bool(DynamicValue.text("true"))


class TestNavigator(unittest.TestCase):
    """Lookups over item lists."""

    def setUp(self):
        self.items = [
            TaggedItem(0x01, DynamicValue.text("first")),
            TaggedItem(0x02),
            TaggedItem(0x03, DynamicValue.container([
                TaggedItem(0x10, DynamicValue.float32(1.5)),
                TaggedItem(0x10, DynamicValue.float32(2.5)),
            ])),
            TaggedItem(0x04, DynamicValue.signed(9)),
            TaggedItem(0x01, DynamicValue.text("second")),
        ]

    def test_find_item_returns_first_match(self):
        self.assertEqual(find_item(self.items, 0x01).value.data, "first")

    def test_missing_tag_raises(self):
        with self.assertRaises(TagNotFoundError) as ctx:
            find_item(self.items, 0x99)
        self.assertIn("0x00000099 (153)", str(ctx.exception))

    def test_valueless_item_raises_missing_value(self):
        with self.assertRaises(MissingValueError):
            find_value(self.items, 0x02)
        with self.assertRaises(MissingValueError):
            get_number(self.items, 0x02)

    def test_get_items(self):
        children = get_items(self.items, 0x03)
        self.assertEqual(len(children), 2)
        self.assertEqual(get_items(self.items, 0x04), [])
        self.assertEqual(get_items(self.items, 0x02), [])
        with self.assertRaises(TagNotFoundError):
            get_items(self.items, 0x05)

    def test_get_items_with_tag(self):
        cells = get_items_with_tag(get_items(self.items, 0x03), 0x10)
        self.assertEqual([to_float(c.value) for c in cells], [1.5, 2.5])
        self.assertEqual(len(get_items_with_tag(self.items, 0x01)), 2)
        self.assertEqual(get_items_with_tag(self.items, 0x77), [])

    def test_container_items(self):
        self.assertEqual(len(container_items(self.items[2])), 2)
        with self.assertRaises(TypeMismatchError):
            container_items(self.items[0])
        with self.assertRaises(MissingValueError):
            container_items(self.items[1])

    def test_typed_getters(self):
        self.assertEqual(get_string(self.items, 0x01), "first")
        self.assertEqual(get_integer(self.items, 0x04), 9)
        self.assertTrue(get_bool(self.items, 0x04))
        with self.assertRaises(TypeMismatchError):
            get_number(self.items, 0x03)


if __name__ == '__main__':
    unittest.main(verbosity=2)
