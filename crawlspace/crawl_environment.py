"""
The namespace expressions are evaluated against.
"""
import collections.abc
import importlib
from typing import Any, Dict, List, Optional, Set

from crawlspace.crawl_bridge import describe, length
from crawlspace.crawl_datatypes import NativeFunction, lower_func
from crawlspace.crawl_errors import RuntimeFault, TypeMismatch


class Environment(collections.abc.MutableMapping):
    """A mutable mapping from identifier to value, owned by one session.

    Identity matters: environment-bound built-ins only dispatch natively when
    evaluated against the environment that created them. Names in
    ``reserved`` cannot be created or replaced by the binding operators.
    """
    def __init__(self, bindings: Optional[Dict[str, Any]] = None):
        self.bindings: Dict[str, Any] = dict(bindings or {})
        self.reserved: Set[str] = set()

    def __getitem__(self, key: str) -> Any:
        return self.bindings[key]

    def __setitem__(self, key: str, value: Any):
        if not isinstance(key, str):
            raise TypeError(f"Environment key must be a str, not {type(key)}")
        self.bindings[key] = value

    def __delitem__(self, key: str):
        del self.bindings[key]

    def __iter__(self):
        return iter(self.bindings)

    def __len__(self) -> int:
        return len(self.bindings)

    def names(self) -> List[str]:
        """Bound names in sorted order."""
        return sorted(self.bindings)

    def reserve(self, *names: str):
        self.reserved.update(names)

    def __repr__(self) -> str:
        return f"<Environment bindings=[{', '.join(self.names())}]>"


def _binding_operator(env: Environment, op_name: str, mutate: bool) -> NativeFunction:
    """Build `define`/`mutate`: op(name...) returns a function taking the values."""

    def bind_names(lhs: List[Any]) -> List[Any]:
        seen = set()
        for name in lhs:
            if not isinstance(name, str):
                raise TypeMismatch(f"{op_name} expected variable names as strings, got {describe(name)}")
            if name in seen:
                raise RuntimeFault(f"variable {name!r} named more than once")
            seen.add(name)
            if name in env.reserved:
                raise RuntimeFault(f"variable {name!r} is reserved")
            if mutate and name not in env:
                raise RuntimeFault(f"variable {name!r} does not exist")
            if not mutate and name in env:
                raise RuntimeFault(f"variable {name!r} already exists")

        def bind_values(rhs: List[Any]) -> List[Any]:
            if len(lhs) != len(rhs):
                raise TypeMismatch(
                    f"variable definition expected a variable for each value ({len(lhs)} != {len(rhs)})")
            for name, value in zip(lhs, rhs):
                env[name] = value
            return []

        return [lower_func(env, bind_values, f"{op_name}({', '.join(map(repr, lhs))})")]

    return lower_func(env, bind_names, op_name)


def _len(args: List[Any]) -> List[Any]:
    if len(args) != 1:
        raise TypeMismatch("len expected 1 argument")
    return [length(args[0])]


def _importer(env: Environment) -> NativeFunction:
    def import_modules(args: List[Any]) -> List[Any]:
        for name in args:
            if not isinstance(name, str):
                raise TypeMismatch(f"import expected module names as strings, got {describe(name)}")
            short = name.rsplit(".", 1)[-1]
            if short in env.reserved or short in env:
                raise RuntimeFault(f"variable {short!r} already exists")
            try:
                module = importlib.import_module(name)
            except ImportError as e:
                raise RuntimeFault(f"cannot import {name!r}: {e}") from e
            env[short] = module
        return []
    return lower_func(env, import_modules, "import")


def define_builtins(env: Environment) -> Environment:
    """Seed ``env`` with constants and the built-in binding operators."""
    env["nil"] = None
    env["true"] = True
    env["false"] = False
    env["define"] = _binding_operator(env, "define", mutate=False)
    env["mutate"] = _binding_operator(env, "mutate", mutate=True)
    env["len"] = lower_func(env, _len, "len")
    env["import"] = _importer(env)
    return env


def new_environment() -> Environment:
    return define_builtins(Environment())
