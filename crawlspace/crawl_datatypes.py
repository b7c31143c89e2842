"""
Synthetic value types used by the crawlspace evaluator.

Ordinary Python objects are values as they are. The classes here cover the
few things a Python object cannot express on its own: several results from
one call, an addressable storage location, and environment-bound built-ins
that present themselves as ordinary callables and namespaces.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Mapping, TYPE_CHECKING

from crawlspace.crawl_errors import TypeMismatch

if TYPE_CHECKING:
    from crawlspace.crawl_environment import Environment


class Results(tuple):
    """Multiple results from a single call.

    A host callable returns ``Results(a, b)`` to produce two values; a plain
    tuple is a single value.
    """
    def __new__(cls, *values):
        return super().__new__(cls, values)

    def __repr__(self) -> str:
        return f"Results{tuple.__repr__(self)}"


# =================================================================
# Environment-bound machinery
# =================================================================

class NativeFunction:
    """A built-in callable owned by one environment.

    The evaluator invokes ``func`` with the raw argument list only when the
    handle belongs to the environment being evaluated; ``func`` returns a
    list of results. Anywhere else the handle is an opaque host value.
    """
    __slots__ = ("env", "func", "name")

    def __init__(self, env: 'Environment', func: Callable[[List[Any]], List[Any]], name: str = ""):
        self.env = env
        self.func = func
        self.name = name or getattr(func, "__name__", "")

    def __repr__(self) -> str:
        return f"<NativeFunction {self.name or '?'}>"


class Namespace:
    """A group of bindings owned by one environment, reachable with `ns.field`."""
    __slots__ = ("env", "bindings")

    def __init__(self, env: 'Environment', bindings: Mapping[str, Any]):
        self.env = env
        self.bindings = bindings

    def field(self, name: str) -> List[Any]:
        if name in self.bindings:
            return [self.bindings[name]]
        raise TypeMismatch(f"field {name!r} in namespace not found")

    def names(self) -> List[str]:
        return sorted(self.bindings)

    def __repr__(self) -> str:
        return f"<Namespace {', '.join(self.names())}>"


def lower_func(env: 'Environment', func: Callable[[List[Any]], List[Any]], name: str = "") -> NativeFunction:
    """Wrap ``func`` so expressions evaluated against ``env`` call it natively."""
    return NativeFunction(env, func, name)


def lower_namespace(env: 'Environment', sub: Mapping[str, Any]) -> Namespace:
    """Expose ``sub`` as a namespace to expressions evaluated against ``env``."""
    return Namespace(env, sub)


# =================================================================
# References
# =================================================================

class Reference(ABC):
    """An addressable location, produced by `&expr`.

    References have no members of their own as far as expressions are
    concerned: `r.name` looks `name` up on the referenced value.
    """
    @abstractmethod
    def deref(self) -> Any:
        """Read the current value stored at the location."""

    @abstractmethod
    def assign(self, value: Any) -> None:
        """Store ``value`` at the location."""

    @abstractmethod
    def _key(self) -> tuple:
        ...

    def __eq__(self, other):
        if not isinstance(other, Reference):
            return NotImplemented
        mine, theirs = self._key(), other._key()
        return (type(self) is type(other)
                and mine[0] is theirs[0]
                and mine[1:] == theirs[1:])

    def __hash__(self):
        key = self._key()
        return hash((type(self), id(key[0])) + key[1:])


class EnvReference(Reference):
    """The binding of ``name`` in an environment."""
    def __init__(self, env: 'Environment', name: str):
        self.env = env
        self.name = name

    def deref(self) -> Any:
        return self.env[self.name]

    def assign(self, value: Any) -> None:
        self.env[self.name] = value

    def _key(self) -> tuple:
        return (self.env, self.name)

    def __repr__(self) -> str:
        return f"<EnvReference {self.name}>"


class AttributeReference(Reference):
    """Attribute ``name`` of ``obj``."""
    def __init__(self, obj: Any, name: str):
        self.obj = obj
        self.name = name

    def deref(self) -> Any:
        return getattr(self.obj, self.name)

    def assign(self, value: Any) -> None:
        setattr(self.obj, self.name, value)

    def _key(self) -> tuple:
        return (self.obj, self.name)

    def __repr__(self) -> str:
        return f"<AttributeReference {type(self.obj).__name__}.{self.name}>"


class ItemReference(Reference):
    """Item ``key`` of ``container``."""
    def __init__(self, container: Any, key: Any):
        self.container = container
        self.key = key

    def deref(self) -> Any:
        return self.container[self.key]

    def assign(self, value: Any) -> None:
        self.container[self.key] = value

    def _key(self) -> tuple:
        return (self.container, self.key)

    def __repr__(self) -> str:
        return f"<ItemReference {type(self.container).__name__}[{self.key!r}]>"
