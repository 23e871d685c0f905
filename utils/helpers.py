# utils/helpers.py
import json
import logging
import math
import struct
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Sequence

from core.errors import SerializationFailure

logger = logging.getLogger(__name__)

# --- Payload Constants ---
PAYLOAD_TRUE = "true"
PAYLOAD_FALSE = "false"

# --- Formatting Functions ---
def to_float32(value: float) -> float:
    """Rounds a Python float to the nearest IEEE 754 single precision value."""
    return struct.unpack('<f', struct.pack('<f', value))[0]

def format_float(value: float, single_precision: bool = False) -> str:
    """
    Formats a float as the shortest decimal string that reads back to the same value.

    Integral values drop the trailing `.0` (`42.0` -> `"42"`), exponents are expanded
    (`1e-07` -> `"0.0000001"`), and the non-finite values render as `inf`, `-inf` and `NaN`.

    Args:
        value: The float to format.
        single_precision: Treat the value as a 32-bit float, so `0.1` stored as float32
            prints as `"0.1"` instead of `"0.10000000149011612"`.

    Returns:
        The formatted decimal string.
    """
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"

    text = repr(float(value))
    if single_precision:
        for digits in range(1, 10):
            candidate = f"{value:.{digits}g}"
            if to_float32(float(candidate)) == value:
                text = candidate
                break

    text = format(Decimal(text), 'f')
    if '.' in text:
        text = text.rstrip('0').rstrip('.')
    return text

def format_payload(value: Any) -> str:
    """
    Converts a record field into the text published on its MQTT topic.

    Args:
        value: A bool, int, float, str, datetime, timedelta or a sequence of floats.

    Returns:
        The payload string.

    Raises:
        SerializationFailure: If the value has no payload representation.
    """
    if isinstance(value, bool):
        return PAYLOAD_TRUE if value else PAYLOAD_FALSE
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format_float(value)
    if isinstance(value, str):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, timedelta):
        return format_duration(value)
    if isinstance(value, (list, tuple)):
        return format_sequence(value)
    raise SerializationFailure(f"Cannot convert value of type {type(value).__name__} to an MQTT payload")

def format_sequence(values: Sequence[float]) -> str:
    """Formats a numeric sequence as `[1,2.5,3.14]`."""
    return "[" + ",".join(format_payload(float(v)) for v in values) + "]"

def format_duration(value: timedelta) -> str:
    """Formats a duration in whole ISO 8601 seconds, e.g. `PT3600S`."""
    return f"PT{int(value.total_seconds())}S"

def to_json_document(document: dict) -> str:
    """
    Serializes a flat document (e.g. the `info` record) to JSON.

    Datetimes are written as RFC 3339 strings. Anything else json cannot encode
    raises `SerializationFailure`.
    """
    def _default(obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, timedelta):
            return format_duration(obj)
        raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")

    try:
        return json.dumps(document, default=_default, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise SerializationFailure(f"Could not serialize document: {e}") from e
