"""
A pretty-printer for crawlspace results.
"""
import collections.abc
import threading
from datetime import timedelta

from crawlspace.crawl_datatypes import NativeFunction, Namespace, Reference, Results
from crawlspace.crawl_environment import Environment

_MICROS_PER = {"h": 3600 * 10**6, "m": 60 * 10**6, "s": 10**6, "ms": 10**3}


def _decimal(n: int, unit: int) -> str:
    """``n / unit`` written without trailing zeros."""
    whole, frac = divmod(n, unit)
    if not frac:
        return str(whole)
    digits = len(str(unit)) - 1
    return f"{whole}.{str(frac).rjust(digits, '0').rstrip('0')}"


def format_duration(d: timedelta) -> str:
    """Format a duration the way it is written as a literal, e.g. `1h30m0s`."""
    micros = d // timedelta(microseconds=1)
    sign = "-" if micros < 0 else ""
    micros = abs(micros)
    if micros == 0:
        return "0s"
    if micros < _MICROS_PER["ms"]:
        return f"{sign}{micros}µs"
    if micros < _MICROS_PER["s"]:
        return f"{sign}{_decimal(micros, _MICROS_PER['ms'])}ms"
    hours, rest = divmod(micros, _MICROS_PER["h"])
    minutes, rest = divmod(rest, _MICROS_PER["m"])
    out = sign
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    return out + f"{_decimal(rest, _MICROS_PER['s'])}s"


class Printer:
    """Formats values in expression syntax where one exists."""

    def __init__(self):
        self._handlers = self._create_handlers()
        self._local = threading.local()

    def pformat(self, obj) -> str:
        """Public entry point to format an object."""
        return self._get_handler(obj)(obj)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, str):
            return self._pformat_str
        if isinstance(obj, Reference):
            return self._pformat_reference
        if isinstance(obj, timedelta):
            return self._pformat_duration
        if isinstance(obj, collections.abc.Mapping) and not isinstance(obj, Environment):
            return self._pformat_dict
        return repr

    def _create_handlers(self):
        return {
            str: self._pformat_str,
            int: str,
            float: repr,
            bool: self._pformat_bool,
            type(None): self._pformat_none,
            timedelta: self._pformat_duration,
            list: self._pformat_list,
            tuple: self._pformat_tuple,
            Results: self._pformat_results,
            dict: self._pformat_dict,
            NativeFunction: self._pformat_native,
            Namespace: self._pformat_namespace,
            Environment: self._pformat_environment,
        }

    def _pformat_str(self, obj):
        escaped = (obj.replace("\\", "\\\\").replace('"', '\\"')
                   .replace("\n", "\\n").replace("\t", "\\t"))
        return f'"{escaped}"'

    def _pformat_bool(self, obj):
        return 'true' if obj else 'false'

    def _pformat_none(self, obj):
        return 'nil'

    def _pformat_duration(self, obj):
        return format_duration(obj)

    def _nested(self, obj, placeholder, fmt):
        """Format a container, printing ``placeholder`` when it contains itself."""
        active = self._local.__dict__.setdefault("active", set())
        if id(obj) in active:
            return placeholder
        active.add(id(obj))
        try:
            return fmt(obj)
        finally:
            active.discard(id(obj))

    def _pformat_list(self, obj):
        return self._nested(obj, "[...]", lambda o: "[" + ", ".join(self.pformat(item) for item in o) + "]")

    def _pformat_tuple(self, obj):
        return self._nested(obj, "(...)", self._format_tuple_items)

    def _format_tuple_items(self, obj):
        if len(obj) == 1:
            return f"({self.pformat(obj[0])},)"
        return "(" + ", ".join(self.pformat(item) for item in obj) + ")"

    def _pformat_results(self, obj):
        return ", ".join(self.pformat(item) for item in obj)

    def _pformat_dict(self, obj):
        return self._nested(obj, "{...}", self._format_dict_items)

    def _format_dict_items(self, obj):
        items = ", ".join(f"{self.pformat(k)}: {self.pformat(v)}" for k, v in obj.items())
        return "{" + items + "}"

    def _pformat_reference(self, obj):
        try:
            return "&" + self.pformat(obj.deref())
        except (LookupError, AttributeError):
            # the location no longer exists
            return repr(obj)

    def _pformat_native(self, obj):
        return f"<native {obj.name}>" if obj.name else "<native>"

    def _pformat_namespace(self, obj):
        return f"<namespace {', '.join(obj.names())}>"

    def _pformat_environment(self, obj):
        return f"<environment {', '.join(obj.names())}>"
