"""
Process introspection helpers for interactive sessions.

A "package" here is any entry of ``sys.modules``. The helpers list and fetch
a package's globals, functions and types, call functions by name, and build
ctypes pointers at raw addresses.
"""
import ctypes
import inspect
import sys
from types import ModuleType
from typing import Any, List, TextIO

from crawlspace.crawl_bridge import call_host, describe
from crawlspace.crawl_convert import convert
from crawlspace.crawl_datatypes import lower_func, lower_namespace
from crawlspace.crawl_environment import Environment, new_environment
from crawlspace.crawl_errors import RuntimeFault, TypeMismatch
from crawlspace.crawl_printer import Printer


def _module(pkg: str) -> ModuleType:
    module = sys.modules.get(pkg)
    if module is None:
        raise RuntimeFault(f"package {pkg!r} is not loaded")
    return module


def _public(pkg: str):
    for name, value in vars(_module(pkg)).items():
        if not name.startswith("_"):
            yield name, value


def _is_global(value: Any) -> bool:
    return not (inspect.ismodule(value) or inspect.isclass(value) or inspect.isroutine(value))


def packages() -> List[str]:
    return sorted(name for name, module in list(sys.modules.items()) if module is not None)


def globals_of(pkg: str) -> List[str]:
    return sorted(name for name, value in _public(pkg) if _is_global(value))


def functions_of(pkg: str) -> List[str]:
    return sorted(name for name, value in _public(pkg) if inspect.isroutine(value))


def types_of(pkg: str) -> List[str]:
    return sorted(name for name, value in _public(pkg) if inspect.isclass(value))


def filter_names(haystack: List[str], needle: str) -> List[str]:
    return [hay for hay in haystack if needle in hay]


def catch(*args) -> List[Any]:
    return list(args)


def _lookup(pkg: str, name: str) -> Any:
    try:
        return getattr(_module(pkg), name)
    except AttributeError:
        raise RuntimeFault(f"{pkg}.{name} not found") from None


def _require_strings(op: str, args: List[Any], count: int):
    for i, arg in enumerate(args[:count]):
        if not isinstance(arg, str):
            raise TypeMismatch(f"{op} expected argument {i + 1} to be a string, got {describe(arg)}")


def _global(args: List[Any]) -> List[Any]:
    if len(args) != 2:
        raise TypeMismatch("global expected 2 arguments")
    _require_strings("global", args, 2)
    return [_lookup(args[0], args[1])]


def _call(args: List[Any]) -> List[Any]:
    if len(args) < 2:
        raise TypeMismatch("call expected at least 2 arguments")
    _require_strings("call", args, 2)
    return call_host(_lookup(args[0], args[1]), args[2:])


def _new_at(args: List[Any]) -> List[Any]:
    if len(args) != 3:
        raise TypeMismatch("newAt expected 3 arguments")
    _require_strings("newAt", args, 2)
    address = args[2]
    if not isinstance(address, int) or isinstance(address, bool):
        raise TypeMismatch(f"newAt expected the third argument to be an integer, got {describe(address)}")
    typ = _lookup(args[0], args[1])
    if not (inspect.isclass(typ) and is_cdata_type(typ)):
        raise TypeMismatch(f"newAt expected a ctypes type, got {describe(typ)}")
    return [convert(address, ctypes.POINTER(typ))]


def is_cdata_type(typ: type) -> bool:
    return issubclass(typ, (ctypes._SimpleCData, ctypes.Structure, ctypes.Union, ctypes.Array, ctypes._Pointer))


def tools_environment(out: TextIO) -> Environment:
    """A new environment with the introspection helpers bound.

    Output from `println`/`printf` goes to ``out``.
    """
    env = new_environment()
    printer = Printer()

    def text(value: Any) -> str:
        return value if isinstance(value, str) else printer.pformat(value)

    def println(*args):
        out.write(" ".join(text(arg) for arg in args) + "\n")

    def printf(fmt: str, *args):
        out.write(fmt % args)

    def dir_(*args) -> List[str]:
        if not args:
            return env.names()
        return sorted(name for name in dir(args[0]) if not name.startswith("__"))

    def assignment(op: str, mutate: bool):
        def assign(args: List[Any]) -> List[Any]:
            if len(args) != 2:
                raise TypeMismatch(f"{op} expected 2 arguments")
            _require_strings(op, args, 1)
            key = args[0]
            if key in env.reserved:
                raise RuntimeFault(f"key {key!r} is reserved")
            if mutate and key not in env:
                raise RuntimeFault(f"key {key!r} does not exist")
            if not mutate and key in env:
                raise RuntimeFault(f"key {key!r} exists")
            env[key] = args[1]
            return []
        return lower_func(env, assign, op)

    env["pretty"] = lower_namespace(env, {"Sprint": printer.pformat})
    env["packages"] = packages
    env["globals"] = globals_of
    env["global"] = lower_func(env, _global, "global")
    env["functions"] = functions_of
    env["types"] = types_of
    env["filter"] = filter_names
    env["call"] = lower_func(env, _call, "call")
    env["newAt"] = lower_func(env, _new_at, "newAt")
    env["dir"] = dir_
    env["println"] = println
    env["printf"] = printf
    env["catch"] = catch
    env["def"] = assignment("def", mutate=False)
    env["mut"] = assignment("mut", mutate=True)
    return env
