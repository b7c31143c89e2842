"""
Conversion between value representations when a host call needs one.
"""
import ctypes
from typing import Any

from crawlspace.crawl_errors import TypeMismatch

_POINTER_TYPES = (ctypes._Pointer, ctypes.c_void_p)
_CDATA_TYPES = (ctypes._SimpleCData, ctypes.Structure, ctypes.Union, ctypes.Array, ctypes._Pointer)


def is_pointer_type(target: Any) -> bool:
    return isinstance(target, type) and issubclass(target, _POINTER_TYPES)


def is_pointer(value: Any) -> bool:
    return isinstance(value, _POINTER_TYPES)


def is_cdata(value: Any) -> bool:
    """Whether ``value`` is a ctypes data instance that has an address."""
    return isinstance(value, _CDATA_TYPES)


def address_of(pointer: Any) -> int:
    """The raw address a ctypes pointer holds (0 for a null pointer)."""
    return ctypes.cast(pointer, ctypes.c_void_p).value or 0


def convert(value: Any, target: type) -> Any:
    """Convert ``value`` to ``target``.

    Raw addresses and pointers are converted explicitly in both directions;
    everything else goes through the target type's constructor.
    """
    if is_pointer_type(target) and isinstance(value, int) and not isinstance(value, bool):
        return ctypes.cast(value, target)
    if target is int and is_pointer(value):
        return address_of(value)
    if isinstance(value, target):
        return value
    try:
        return target(value)
    except (TypeError, ValueError) as e:
        raise TypeMismatch(
            f"cannot convert {type(value).__name__} value {value!r} to {target.__name__}"
        ) from e
