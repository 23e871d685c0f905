# plugins/e3dc/rscp_values.py
"""
Typed representation of RSCP tagged values and the coercions used to read them.

The E3DC firmware does not keep a field's wire type stable between releases
(a power value may arrive as Int32 on one system and as Float32 on another),
so the domain code never inspects a value's type directly. It asks for the
representation it needs through one of the four coercions below, each of which
either converts losslessly or raises `TypeMismatchError`. Nothing is clamped.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from core.errors import TypeMismatchError
from utils.helpers import PAYLOAD_FALSE, PAYLOAD_TRUE, format_float, to_float32

INT_WIDTHS = (8, 16, 32, 64)
UINT64_LIMIT = 2 ** 64
BOOL_EPSILON = 1e-10


class ValueKind(str, Enum):
    """The closed set of value variants an RSCP item can carry."""
    BOOL = "bool"
    SIGNED_INT = "signed_int"
    UNSIGNED_INT = "unsigned_int"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    TEXT = "text"
    CONTAINER = "container"


@dataclass(frozen=True)
class DynamicValue:
    """
    A single decoded RSCP value.

    Use the classmethod constructors rather than building instances directly;
    they check that integers fit their declared width and normalize floats.
    """
    kind: ValueKind
    data: Any
    width: Optional[int] = None

    def __post_init__(self):
        if self.kind in (ValueKind.SIGNED_INT, ValueKind.UNSIGNED_INT):
            if self.width not in INT_WIDTHS:
                raise ValueError(f"Unsupported integer width {self.width}")
            if not isinstance(self.data, int) or isinstance(self.data, bool):
                raise ValueError(f"Integer value expected, got {self.data!r}")
            if self.kind == ValueKind.SIGNED_INT:
                low, high = -(2 ** (self.width - 1)), 2 ** (self.width - 1) - 1
            else:
                low, high = 0, 2 ** self.width - 1
            if not low <= self.data <= high:
                raise ValueError(f"{self.data} does not fit a {self.kind.value}{self.width}")
        elif self.kind == ValueKind.BOOL and not isinstance(self.data, bool):
            raise ValueError(f"Boolean value expected, got {self.data!r}")
        elif self.kind == ValueKind.TEXT and not isinstance(self.data, str):
            raise ValueError(f"Text value expected, got {self.data!r}")
        elif self.kind == ValueKind.CONTAINER and not isinstance(self.data, list):
            raise ValueError("Container value expects a list of TaggedItem")

    @classmethod
    def boolean(cls, value: bool) -> 'DynamicValue':
        return cls(ValueKind.BOOL, value)

    @classmethod
    def signed(cls, value: int, width: int = 32) -> 'DynamicValue':
        return cls(ValueKind.SIGNED_INT, value, width)

    @classmethod
    def unsigned(cls, value: int, width: int = 32) -> 'DynamicValue':
        return cls(ValueKind.UNSIGNED_INT, value, width)

    @classmethod
    def float32(cls, value: float) -> 'DynamicValue':
        return cls(ValueKind.FLOAT32, to_float32(float(value)))

    @classmethod
    def float64(cls, value: float) -> 'DynamicValue':
        return cls(ValueKind.FLOAT64, float(value))

    @classmethod
    def text(cls, value: str) -> 'DynamicValue':
        return cls(ValueKind.TEXT, value)

    @classmethod
    def container(cls, items: List['TaggedItem']) -> 'DynamicValue':
        return cls(ValueKind.CONTAINER, list(items))

    @property
    def is_container(self) -> bool:
        return self.kind == ValueKind.CONTAINER

    @property
    def children(self) -> List['TaggedItem']:
        """The contained items, or an empty list for scalar values."""
        return self.data if self.is_container else []


@dataclass(frozen=True)
class TaggedItem:
    """One node of an RSCP request or response tree."""
    tag: int
    value: Optional[DynamicValue] = field(default=None)


def to_string(value: DynamicValue) -> str:
    if value.kind == ValueKind.TEXT:
        return value.data
    if value.kind == ValueKind.BOOL:
        return PAYLOAD_TRUE if value.data else PAYLOAD_FALSE
    if value.kind in (ValueKind.SIGNED_INT, ValueKind.UNSIGNED_INT):
        return str(value.data)
    if value.kind == ValueKind.FLOAT32:
        return format_float(value.data, single_precision=True)
    if value.kind == ValueKind.FLOAT64:
        return format_float(value.data)
    raise TypeMismatchError(f"Cannot convert {value.kind.value} to string")


def to_float(value: DynamicValue) -> float:
    if value.kind == ValueKind.BOOL:
        return 1.0 if value.data else 0.0
    if value.kind in (ValueKind.SIGNED_INT, ValueKind.UNSIGNED_INT,
                      ValueKind.FLOAT32, ValueKind.FLOAT64):
        return float(value.data)
    raise TypeMismatchError(f"Cannot convert {value.kind.value} to float")


def to_uint(value: DynamicValue) -> int:
    if value.kind == ValueKind.BOOL:
        return 1 if value.data else 0
    if value.kind == ValueKind.UNSIGNED_INT:
        return value.data
    if value.kind == ValueKind.SIGNED_INT:
        if value.data < 0:
            raise TypeMismatchError(f"Negative value {value.data} cannot be converted to an unsigned integer")
        return value.data
    if value.kind in (ValueKind.FLOAT32, ValueKind.FLOAT64):
        number = value.data
        if not math.isfinite(number) or number < 0 or number >= UINT64_LIMIT:
            raise TypeMismatchError(f"Float {number} out of range for an unsigned integer")
        return int(number)
    raise TypeMismatchError(f"Cannot convert {value.kind.value} to unsigned integer")


def to_bool(value: DynamicValue) -> bool:
    if value.kind == ValueKind.BOOL:
        return value.data
    if value.kind in (ValueKind.SIGNED_INT, ValueKind.UNSIGNED_INT):
        return value.data != 0
    if value.kind in (ValueKind.FLOAT32, ValueKind.FLOAT64):
        # firmware reports some flags as floats with rounding noise
        return abs(value.data) >= BOOL_EPSILON
    raise TypeMismatchError(f"Cannot convert {value.kind.value} to bool")
