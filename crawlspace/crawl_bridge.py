"""
Capability dispatch over arbitrary Python values.

The evaluator never branches on concrete host types; it asks the helpers in
this module whether a value has a member, can be indexed, sliced, called or
compared, and lets them do the work.
"""
import collections.abc
import ctypes
import inspect
import operator
import typing
from typing import Any, List, Optional

from crawlspace.crawl_convert import convert, is_pointer
from crawlspace.crawl_datatypes import Reference, Results
from crawlspace.crawl_errors import TypeMismatch

MISSING = object()


def describe(value: Any) -> str:
    """A short runtime description of ``value`` for error messages."""
    text = repr(value)
    if len(text) > 80:
        text = text[:77] + "..."
    return f"{text} ({type(value).__name__})"


# --- Members ---

def get_member(value: Any, name: str) -> Any:
    """Return attribute ``name`` of ``value``, or MISSING."""
    if isinstance(value, Reference):
        return MISSING
    try:
        return getattr(value, name)
    except AttributeError:
        return MISSING


def has_member(value: Any, name: str) -> bool:
    return get_member(value, name) is not MISSING


def referent(value: Any) -> Any:
    """The value a reference or ctypes pointer points at, or MISSING."""
    if isinstance(value, Reference):
        return value.deref()
    if is_pointer(value) and hasattr(value, "contents"):
        return value.contents
    return MISSING


def lookup_field(value: Any, name: str) -> Any:
    """Member lookup on the value, then on whatever it references."""
    member = get_member(value, name)
    if member is not MISSING:
        return member
    target = referent(value)
    if target is not MISSING:
        return get_member(target, name)
    return MISSING


def field_owner(value: Any, name: str) -> Any:
    """The object that actually holds member ``name``, or MISSING."""
    if has_member(value, name):
        return value
    target = referent(value)
    if target is not MISSING and has_member(target, name):
        return target
    return MISSING


# --- Indexing ---

def is_sequence(value: Any) -> bool:
    if isinstance(value, collections.abc.Mapping):
        return False
    return isinstance(value, (str, bytes, bytearray, collections.abc.Sequence, ctypes.Array))


def is_mapping(value: Any) -> bool:
    if isinstance(value, collections.abc.Mapping):
        return True
    return hasattr(value, "__getitem__") and not is_sequence(value)


def to_index(value: Any) -> Optional[int]:
    """``value`` as an int index, or None if it is not integer-convertible."""
    if isinstance(value, bool):
        return None
    try:
        return operator.index(value)
    except TypeError:
        return None


def index_value(container: Any, key: Any) -> Any:
    if is_sequence(container):
        i = to_index(key)
        if i is None:
            raise TypeMismatch(f"index {key!r} is not an int")
        return container[i]
    if isinstance(container, collections.abc.Mapping):
        return container.get(key)
    if is_mapping(container):
        try:
            return container[key]
        except KeyError:
            return None
    raise TypeMismatch(f"tried to access index {key!r} on value {describe(container)}")


def slice_value(container: Any, low: Any, high: Any) -> Any:
    if not is_sequence(container):
        raise TypeMismatch(f"tried to slice value {describe(container)}")
    lo, hi = to_index(low), to_index(high)
    if lo is None:
        raise TypeMismatch(f"slice index {low!r} not an int")
    if hi is None:
        raise TypeMismatch(f"slice index {high!r} not an int")
    return container[lo:hi]


def length(value: Any) -> int:
    if isinstance(value, (str, bytes, bytearray)) or is_sequence(value) or is_mapping(value):
        try:
            return len(value)
        except TypeError:
            pass
    raise TypeMismatch(f"len of value {describe(value)}")


# --- Equality ---

def equals(left: Any, right: Any) -> bool:
    """Value equality without implicit coercion: 1 and 1.0 are different."""
    if left is right:
        return True
    if type(left) is not type(right):
        return False
    return bool(left == right)


# --- Calls ---

def results_of(returned: Any) -> List[Any]:
    """Normalize a host callable's return value into a result list."""
    if returned is None:
        return []
    if isinstance(returned, Results):
        return list(returned)
    return [returned]


def _coerce(value: Any, annotation: Any) -> Any:
    if annotation is inspect.Parameter.empty or annotation is typing.Any:
        return value
    if not isinstance(annotation, type):
        return value
    try:
        if isinstance(value, annotation):
            return value
    except TypeError:
        return value
    return convert(value, annotation)


def coerce_arguments(func: Any, args: List[Any]) -> List[Any]:
    """Check ``args`` against the signature of ``func`` and convert them.

    Callables without an introspectable signature get the arguments as-is.
    """
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return list(args)
    try:
        bound = sig.bind(*args)
    except TypeError as e:
        name = getattr(func, "__qualname__", None) or describe(func)
        raise TypeMismatch(f"cannot call {name} with {len(args)} argument(s): {e}") from e
    out = []
    for pname, value in bound.arguments.items():
        param = sig.parameters[pname]
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            out.extend(_coerce(v, param.annotation) for v in value)
        else:
            out.append(_coerce(value, param.annotation))
    return out


def call_host(func: Any, args: List[Any]) -> List[Any]:
    """Call an ordinary host callable and return its results as a list."""
    if not callable(func):
        raise TypeMismatch(f"tried to call value {describe(func)}")
    return results_of(func(*coerce_arguments(func, args)))
