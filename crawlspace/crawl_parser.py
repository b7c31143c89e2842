"""
Recursive-descent parser for crawlspace expressions.

There is no separate tokenizer: every parse method reads characters straight
from the source, skips trailing whitespace and comments itself, and either
returns a node, returns None when its construct is not present at the
current position, or raises ParseError.
"""
import re
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Tuple

from crawlspace.crawl_ast import (
    Evaluable, Value, Ident, Subexpression, FieldAccess, ArrayAccess, SliceAccess,
    Call, Operation, Modifier,
    OP_MUL, OP_DIV, OP_ADD, OP_SUB, OP_LESS, OP_LESS_EQUAL, OP_EQUAL, OP_NOT_EQUAL,
    OP_GREATER, OP_GREATER_EQUAL, OP_AND, OP_OR,
    MOD_NEG, MOD_NOT, MOD_REF, MOD_DEREF,
)
from crawlspace.crawl_errors import ParseError, Position

EOF = ""

INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1

# Longest suffixes first so "ms" wins over "m".
DURATION_UNITS: Dict[str, Decimal] = {
    "ns": Decimal("0.001"),
    "us": Decimal(1),
    "µs": Decimal(1),
    "ms": Decimal(1000),
    "s": Decimal(1000000),
    "m": Decimal(60 * 1000000),
    "h": Decimal(3600 * 1000000),
}

_DECIMAL_FLOAT = re.compile(r"^[0-9][0-9_]*(\.[0-9_]*)?([eE][+-]?[0-9_]+)?$")

OpTable = Dict[str, List[str]]

MODIFIERS: OpTable = {MOD_NEG: ["-"], MOD_REF: ["&"], MOD_DEREF: ["*"]}
MULTIPLICATIVE: OpTable = {OP_MUL: ["*"], OP_DIV: ["/"]}
ADDITIVE: OpTable = {OP_ADD: ["+"], OP_SUB: ["-"]}
COMPARISON: OpTable = {
    OP_LESS: ["<"],
    OP_LESS_EQUAL: ["<="],
    OP_EQUAL: ["=="],
    OP_NOT_EQUAL: ["!=", "~=", "<>"],
    OP_GREATER: [">"],
    OP_GREATER_EQUAL: [">="],
}
BOOL_NEGATION: OpTable = {MOD_NOT: ["!"]}
CONJUNCTION: OpTable = {OP_AND: ["&&"]}
DISJUNCTION: OpTable = {OP_OR: ["||"]}


def is_identifier_char(c: str) -> bool:
    return c != EOF and (c == "_" or c.isalpha() or c.isdigit())


def is_number_char(c: str) -> bool:
    return c != EOF and (c.isdigit() or c in "._xXoObBaAcCdDeEfF")


def char_repr(c: str) -> str:
    return "eof" if c == EOF else repr(c)


def _candidates(table: OpTable) -> List[Tuple[str, str]]:
    pairs = [(cls, op) for cls, ops in table.items() for op in ops]
    return sorted(pairs, key=lambda p: -len(p[1]))


class Parser:
    """Parses one expression from ``source``."""

    def __init__(self, source: str):
        self.source = source
        self.offset = 0
        self.line = 1
        self.col = 1

    # --- Cursor ---

    def eof(self) -> bool:
        return self.offset >= len(self.source)

    def char(self, lookahead: int = 0) -> str:
        i = self.offset + lookahead
        if i < 0 or i >= len(self.source):
            return EOF
        return self.source[i]

    def peek(self, width: int) -> str:
        return self.source[self.offset:self.offset + width]

    def advance(self, distance: int = 1):
        for _ in range(distance):
            if self.eof():
                raise self.error("unexpected eof")
            if self.source[self.offset] == "\n":
                self.line += 1
                self.col = 1
            else:
                self.col += 1
            self.offset += 1

    def checkpoint(self) -> Position:
        return Position(self.offset, self.line, self.col)

    def restore(self, pos: Position):
        self.offset, self.line, self.col = pos

    def error(self, message: str, pos: Optional[Position] = None) -> ParseError:
        return ParseError(message, pos or self.checkpoint())

    # --- Whitespace and comments ---

    def skip_comment(self) -> bool:
        start = self.peek(2)
        if start == "//":
            end = "\n"
        elif start == "/*":
            end = "*/"
        else:
            return False
        self.advance(2)
        while not self.eof():
            if self.peek(len(end)) == end:
                self.advance(len(end))
                return True
            self.advance()
        return True

    def skip_whitespace(self):
        while not self.eof():
            if self.skip_comment():
                continue
            if self.char() in " \t\r\n":
                self.advance()
                continue
            return

    # --- Atoms ---

    def parse_chars(self, allowed: Callable[[str], bool]) -> str:
        start = self.offset
        while allowed(self.char()):
            self.advance()
        return self.source[start:self.offset]

    def parse_identifier(self) -> Optional[Ident]:
        cp = self.checkpoint()
        if self.char().isdigit():
            return None
        name = self.parse_chars(is_identifier_char)
        if not name:
            return None
        self.skip_whitespace()
        return Ident(name, cp)

    def _number_text(self) -> str:
        start = self.offset
        decimal = not (self.char() == "0" and self.char(1) in "xXoObB")
        while True:
            c = self.char()
            if is_number_char(c):
                self.advance()
                if decimal and c in "eE" and self.char() in "+-":
                    self.advance()
                continue
            return self.source[start:self.offset]

    def parse_duration_suffix(self) -> str:
        for suffix in DURATION_UNITS:
            if self.peek(len(suffix)) == suffix and self.is_boundary(len(suffix)):
                self.advance(len(suffix))
                return suffix
        return ""

    def parse_number(self) -> Optional[Value]:
        cp = self.checkpoint()
        if not self.char().isdigit():
            return None
        text = self._number_text()
        suffix = self.parse_duration_suffix()
        self.skip_whitespace()

        if suffix:
            try:
                micros = Decimal(text.replace("_", "")) * DURATION_UNITS[suffix]
                return Value(timedelta(microseconds=int(micros.to_integral_value())), cp)
            except (InvalidOperation, OverflowError):
                raise self.error(f"invalid duration {text + suffix!r}", cp)

        if _DECIMAL_FLOAT.match(text) and any(c in text for c in ".eE"):
            try:
                return Value(float(text), cp)
            except ValueError:
                raise self.error(f"invalid float literal {text!r}", cp)
        try:
            val = int(text, 0)
        except ValueError:
            raise self.error(f"invalid number literal {text!r}", cp)
        if not INT64_MIN <= val <= INT64_MAX:
            raise self.error(f"integer literal {text!r} out of range", cp)
        return Value(val, cp)

    def parse_string(self) -> Optional[Value]:
        cp = self.checkpoint()
        if self.char() != '"':
            return None
        self.advance()
        chars = []
        while True:
            c = self.char()
            if c in (EOF, "\n"):
                raise self.error("unexpected end of line")
            self.advance()
            match c:
                case "\\":
                    esc = self.char()
                    if esc == EOF:
                        raise self.error("unexpected end of line")
                    self.advance()
                    match esc:
                        case "\\" | '"':
                            chars.append(esc)
                        case "n":
                            chars.append("\n")
                        case "t":
                            chars.append("\t")
                        case _:
                            raise self.error(f"unexpected escape code: {char_repr(esc)}")
                case '"':
                    self.skip_whitespace()
                    return Value("".join(chars), cp)
                case _:
                    chars.append(c)

    def parse_literal(self) -> Optional[Evaluable]:
        return self.parse_string() or self.parse_identifier() or self.parse_number()

    # --- Postfix chain ---

    def parse_field_access(self, val: Evaluable) -> Optional[Evaluable]:
        cp = self.checkpoint()
        if self.char() != ".":
            return None
        self.advance()
        self.skip_whitespace()
        ident = self.parse_identifier()
        if ident is None:
            self.restore(cp)
            return None
        return FieldAccess(val, ident.name, cp)

    def parse_array_access(self, val: Evaluable) -> Optional[Evaluable]:
        cp = self.checkpoint()
        if self.char() != "[":
            return None
        self.advance()
        self.skip_whitespace()
        low = self.parse_expression()
        if low is None:
            raise self.error("missing index expression")
        if self.char() == ":":
            self.advance()
            self.skip_whitespace()
            high = self.parse_expression()
            if high is None:
                raise self.error("missing slice bound")
            node: Evaluable = SliceAccess(val, low, high, cp)
        else:
            node = ArrayAccess(val, low, cp)
        if self.char() != "]":
            raise self.error("expected end of array access")
        self.advance()
        self.skip_whitespace()
        return node

    def parse_args(self) -> Optional[List[Evaluable]]:
        if self.char() != "(":
            return None
        self.advance()
        self.skip_whitespace()
        args: List[Evaluable] = []
        if self.char() == ")":
            self.advance()
            self.skip_whitespace()
            return args
        while True:
            arg = self.parse_expression()
            if arg is None:
                raise self.error("unexpected missing argument")
            args.append(arg)
            if self.char() == ")":
                self.advance()
                self.skip_whitespace()
                return args
            if self.char() != ",":
                raise self.error(f"unexpected character {char_repr(self.char())}")
            self.advance()
            self.skip_whitespace()

    def parse_function_call(self, val: Evaluable) -> Optional[Evaluable]:
        cp = self.checkpoint()
        args = self.parse_args()
        if args is None:
            return None
        return Call(val, tuple(args), cp)

    def parse_modified_subexpression(self) -> Optional[Evaluable]:
        val = self.parse_subexpression()
        if val is None:
            return None
        while not self.eof():
            nxt = (self.parse_field_access(val)
                   or self.parse_array_access(val)
                   or self.parse_function_call(val))
            if nxt is None:
                break
            val = nxt
        return val

    def parse_subexpression(self) -> Optional[Evaluable]:
        cp = self.checkpoint()
        if self.char() != "(":
            return self.parse_literal()
        self.advance()
        self.skip_whitespace()
        expr = self.parse_expression()
        if expr is None:
            raise self.error("missing subexpression")
        if self.char() != ")":
            raise self.error(f"subexpression ended unexpectedly, found {char_repr(self.char())}")
        self.advance()
        self.skip_whitespace()
        return Subexpression(expr, cp)

    # --- Operators, lowest precedence last ---

    def parse_val_negation(self):
        return self.parse_modifier(self.parse_modified_subexpression, MODIFIERS)

    def parse_multiplication_division(self):
        return self.parse_operation(self.parse_val_negation, MULTIPLICATIVE)

    def parse_addition_subtraction(self):
        return self.parse_operation(self.parse_multiplication_division, ADDITIVE)

    def parse_comparison(self):
        return self.parse_operation(self.parse_addition_subtraction, COMPARISON)

    def parse_bool_negation(self):
        return self.parse_modifier(self.parse_comparison, BOOL_NEGATION)

    def parse_conjunction(self):
        return self.parse_operation(self.parse_bool_negation, CONJUNCTION)

    def parse_disjunction(self):
        return self.parse_operation(self.parse_conjunction, DISJUNCTION)

    def parse_expression(self) -> Optional[Evaluable]:
        return self.parse_disjunction()

    def is_boundary(self, width: int) -> bool:
        """A token of ``width`` chars at the cursor does not run into an identifier."""
        return not (is_identifier_char(self.char(width - 1)) and is_identifier_char(self.char(width)))

    def parse_op_and_rhs(self, value_parse: Callable[[], Optional[Evaluable]],
                         table: OpTable) -> Tuple[str, Optional[Evaluable]]:
        cp = self.checkpoint()
        for cls, op in _candidates(table):
            if self.peek(len(op)) != op or not self.is_boundary(len(op)):
                continue
            self.advance(len(op))
            self.skip_whitespace()
            rhs = value_parse()
            if rhs is not None:
                return cls, rhs
            self.restore(cp)
        return "", None

    def parse_operation(self, value_parse: Callable[[], Optional[Evaluable]],
                        table: OpTable) -> Optional[Evaluable]:
        val = value_parse()
        if val is None:
            return None
        while not self.eof():
            cp = self.checkpoint()
            cls, rhs = self.parse_op_and_rhs(value_parse, table)
            if rhs is None:
                break
            val = Operation(cls, val, rhs, cp)
        return val

    def parse_modifier(self, value_parse: Callable[[], Optional[Evaluable]],
                       table: OpTable) -> Optional[Evaluable]:
        cp = self.checkpoint()
        cls, val = self.parse_op_and_rhs(value_parse, table)
        if val is not None:
            return Modifier(cls, val, cp)
        return value_parse()

    # --- Entry point ---

    def parse(self) -> Evaluable:
        self.skip_whitespace()
        try:
            val = self.parse_expression()
        except RecursionError:
            raise self.error("expression nested too deeply") from None
        if not self.eof():
            raise self.error(f"unparsed input: {self.source[self.offset:]!r}")
        if val is None:
            raise self.error("nothing parsed")
        return val


def parse(expression: str) -> Evaluable:
    """Parse ``expression`` into an AST, raising ParseError on bad input."""
    return Parser(expression).parse()
