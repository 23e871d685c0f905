# plugins/e3dc/rscp_navigator.py
"""
Lookups over RSCP item lists.

The typed getters (`get_string`, `get_number`, `get_integer`, `get_bool`) are the
only way the snapshot assembler reads fields, so a missing tag, an empty value
or an impossible conversion always surfaces as an `E3dcError`.
"""
from typing import List, Sequence

from core.errors import MissingValueError, TagNotFoundError, TypeMismatchError
from plugins.e3dc.rscp_values import (
    DynamicValue, TaggedItem, to_bool, to_float, to_string, to_uint
)


def find_item(items: Sequence[TaggedItem], tag: int) -> TaggedItem:
    """Returns the first item carrying `tag`, raising `TagNotFoundError` if there is none."""
    for item in items:
        if item.tag == tag:
            return item
    raise TagNotFoundError(tag)


def find_value(items: Sequence[TaggedItem], tag: int) -> DynamicValue:
    item = find_item(items, tag)
    if item.value is None:
        raise MissingValueError(tag)
    return item.value


def get_items(items: Sequence[TaggedItem], tag: int) -> List[TaggedItem]:
    """
    Returns the children of the container item carrying `tag`.

    An absent tag raises `TagNotFoundError`. A present item that is not a
    container (or carries no value) yields an empty list.
    """
    item = find_item(items, tag)
    if item.value is None:
        return []
    return item.value.children


def get_items_with_tag(items: Sequence[TaggedItem], tag: int) -> List[TaggedItem]:
    """Returns every sibling carrying `tag`, in order. Used for repeated entries such as cell values."""
    return [item for item in items if item.tag == tag]


def container_items(item: TaggedItem) -> List[TaggedItem]:
    """Returns the children of `item`, which must itself be a container."""
    if item.value is None:
        raise MissingValueError(item.tag)
    if not item.value.is_container:
        raise TypeMismatchError(f"Item {item.tag:#010x} is a {item.value.kind.value}, not a container")
    return item.value.children


def get_string(items: Sequence[TaggedItem], tag: int) -> str:
    return to_string(find_value(items, tag))


def get_number(items: Sequence[TaggedItem], tag: int) -> float:
    return to_float(find_value(items, tag))


def get_integer(items: Sequence[TaggedItem], tag: int) -> int:
    return to_uint(find_value(items, tag))


def get_bool(items: Sequence[TaggedItem], tag: int) -> bool:
    return to_bool(find_value(items, tag))
