"""
Evaluable AST nodes.

Nodes are built once by the parser and never change afterwards. Each node
runs against an Environment and produces a list of zero or more values.
"""
import ctypes
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, TYPE_CHECKING

from crawlspace import crawl_bridge as bridge
from crawlspace.crawl_convert import is_cdata
from crawlspace.crawl_datatypes import (
    NativeFunction, Namespace, Reference, Results,
    EnvReference, AttributeReference, ItemReference,
)
from crawlspace.crawl_errors import (
    CrawlspaceError, Position, RuntimeFault, TypeMismatch, UnboundVariable, UnknownOperator,
)

if TYPE_CHECKING:
    from crawlspace.crawl_environment import Environment

# Binary operators
OP_MUL = "*"
OP_DIV = "/"
OP_ADD = "+"
OP_SUB = "-"
OP_LESS = "<"
OP_LESS_EQUAL = "<="
OP_EQUAL = "=="
OP_NOT_EQUAL = "!="
OP_GREATER = ">"
OP_GREATER_EQUAL = ">="
OP_AND = "&&"
OP_OR = "||"

# Unary modifiers
MOD_NEG = "-"
MOD_NOT = "!"
MOD_REF = "&"
MOD_DEREF = "*"

NO_POS = Position(0, 1, 1)


def single_value(results: List[Any], pos: Optional[Position]) -> Any:
    """Collapse a result list to one value. No results reads as nil."""
    if not results:
        return None
    if len(results) == 1:
        return results[0]
    raise RuntimeFault("multivalue result used in single value location", pos)


class Evaluable(ABC):
    """Base class for every AST node."""
    pos: Position

    @abstractmethod
    def run(self, env: 'Environment') -> List[Any]:
        ...

    def address(self, env: 'Environment') -> Reference:
        """The storage location this expression denotes, for `&expr`."""
        raise TypeMismatch(f"cannot take the address of {self.describe()}", self.pos)

    def describe(self) -> str:
        return type(self).__name__.lower()

    def _single(self, node: 'Evaluable', env: 'Environment') -> Any:
        return single_value(node.run(env), self.pos)


@dataclass(frozen=True)
class Value(Evaluable):
    """A literal constant computed at parse time."""
    val: Any
    pos: Position = field(default=NO_POS, compare=False, repr=False)

    def run(self, env):
        return [self.val]

    def describe(self):
        return f"literal {self.val!r}"


@dataclass(frozen=True)
class Ident(Evaluable):
    name: str
    pos: Position = field(default=NO_POS, compare=False, repr=False)

    def run(self, env):
        if self.name not in env:
            raise UnboundVariable(f"{self.name!r}", self.pos)
        val = env[self.name]
        if isinstance(val, Results):
            return list(val)
        return [val]

    def address(self, env):
        if self.name not in env:
            raise UnboundVariable(f"{self.name!r}", self.pos)
        return EnvReference(env, self.name)

    def describe(self):
        return f"identifier {self.name!r}"


@dataclass(frozen=True)
class Subexpression(Evaluable):
    expr: Evaluable
    pos: Position = field(default=NO_POS, compare=False, repr=False)

    def run(self, env):
        return self.expr.run(env)

    def address(self, env):
        return self.expr.address(env)


@dataclass(frozen=True)
class FieldAccess(Evaluable):
    val: Evaluable
    name: str
    pos: Position = field(default=NO_POS, compare=False, repr=False)

    def run(self, env):
        v = self._single(self.val, env)
        if isinstance(v, Namespace) and v.env is env:
            try:
                return v.field(self.name)
            except CrawlspaceError as e:
                raise e.at(self.pos)
        member = bridge.lookup_field(v, self.name)
        if member is bridge.MISSING:
            raise TypeMismatch(
                f"tried to access field {self.name!r} on value {bridge.describe(v)}", self.pos)
        return [member]

    def address(self, env):
        v = self._single(self.val, env)
        if isinstance(v, Namespace) and v.env is env:
            if self.name not in v.bindings:
                raise TypeMismatch(f"field {self.name!r} in namespace not found", self.pos)
            return ItemReference(v.bindings, self.name)
        owner = bridge.field_owner(v, self.name)
        if owner is bridge.MISSING:
            raise TypeMismatch(
                f"tried to access field {self.name!r} on value {bridge.describe(v)}", self.pos)
        return AttributeReference(owner, self.name)


@dataclass(frozen=True)
class ArrayAccess(Evaluable):
    array: Evaluable
    index: Evaluable
    pos: Position = field(default=NO_POS, compare=False, repr=False)

    def _operands(self, env) -> Tuple[Any, Any]:
        return self._single(self.array, env), self._single(self.index, env)

    def run(self, env):
        v, index = self._operands(env)
        try:
            return [bridge.index_value(v, index)]
        except CrawlspaceError as e:
            raise e.at(self.pos)

    def address(self, env):
        v, index = self._operands(env)
        if bridge.is_sequence(v):
            i = bridge.to_index(index)
            if i is None:
                raise TypeMismatch(f"index {index!r} is not an int", self.pos)
            return ItemReference(v, i)
        if bridge.is_mapping(v):
            return ItemReference(v, index)
        raise TypeMismatch(f"tried to access index {index!r} on value {bridge.describe(v)}", self.pos)


@dataclass(frozen=True)
class SliceAccess(Evaluable):
    array: Evaluable
    low: Evaluable
    high: Evaluable
    pos: Position = field(default=NO_POS, compare=False, repr=False)

    def run(self, env):
        v = self._single(self.array, env)
        low = self._single(self.low, env)
        # the low bound is evaluated twice
        self._single(self.low, env)
        high = self._single(self.high, env)
        try:
            return [bridge.slice_value(v, low, high)]
        except CrawlspaceError as e:
            raise e.at(self.pos)


@dataclass(frozen=True)
class Call(Evaluable):
    func: Evaluable
    args: Tuple[Evaluable, ...]
    pos: Position = field(default=NO_POS, compare=False, repr=False)

    def _arguments(self, env) -> List[Any]:
        if len(self.args) == 1:
            # a lone argument may spread a multi-value call into the argument list
            return self.args[0].run(env)
        return [self._single(arg, env) for arg in self.args]

    def run(self, env):
        fn = self._single(self.func, env)
        args = self._arguments(env)
        try:
            if isinstance(fn, NativeFunction) and fn.env is env:
                return list(fn.func(args))
            return bridge.call_host(fn, args)
        except CrawlspaceError as e:
            raise e.at(self.pos)


@dataclass(frozen=True)
class Operation(Evaluable):
    op: str
    left: Evaluable
    right: Evaluable
    pos: Position = field(default=NO_POS, compare=False, repr=False)

    def _require_bool(self, value: Any) -> bool:
        if not isinstance(value, bool):
            raise TypeMismatch(f"operator {self.op} expected a bool, got {bridge.describe(value)}", self.pos)
        return value

    def run(self, env):
        left = self._single(self.left, env)
        match self.op:
            case "==" | "!=":
                right = self._single(self.right, env)
                rv = bridge.equals(left, right)
                if self.op == OP_NOT_EQUAL:
                    rv = not rv
                return [rv]
            case "&&":
                if not self._require_bool(left):
                    return [left]
                return [self._single(self.right, env)]
            case "||":
                if self._require_bool(left):
                    return [left]
                return [self._single(self.right, env)]
        raise UnknownOperator(f"{self.op!r}", self.pos)


@dataclass(frozen=True)
class Modifier(Evaluable):
    op: str
    val: Evaluable
    pos: Position = field(default=NO_POS, compare=False, repr=False)

    def run(self, env):
        if self.op == MOD_REF:
            ref = self.val.address(env)
            target = ref.deref()
            if is_cdata(target):
                return [ctypes.pointer(target)]
            return [ref]

        val = self._single(self.val, env)
        match self.op:
            case "!":
                if not isinstance(val, bool):
                    raise TypeMismatch(f"operator ! expected a bool, got {bridge.describe(val)}", self.pos)
                return [not val]
            case "*":
                target = bridge.referent(val)
                if target is bridge.MISSING:
                    raise TypeMismatch(f"cannot dereference value {bridge.describe(val)}", self.pos)
                return [target]
        raise UnknownOperator(f"{self.op!r}", self.pos)

    def address(self, env):
        if self.op == MOD_DEREF:
            val = self._single(self.val, env)
            if isinstance(val, Reference):
                return val
        return super().address(env)
