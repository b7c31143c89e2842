"""
Error types raised by the crawlspace parser and evaluator.
"""
from typing import NamedTuple, Optional


class Position(NamedTuple):
    """A location in expression source. Lines and columns start at 1."""
    offset: int
    line: int
    col: int


class CrawlspaceError(Exception):
    """Base class for every error the expression engine raises."""
    kind = "error"

    def __init__(self, message: str, pos: Optional[Position] = None):
        super().__init__(message)
        self.message = message
        self.pos = pos

    def at(self, pos: Optional[Position]) -> 'CrawlspaceError':
        """Attach a position if the error does not carry one yet."""
        if self.pos is None:
            self.pos = pos
        return self

    @property
    def line(self) -> Optional[int]:
        return self.pos.line if self.pos else None

    @property
    def col(self) -> Optional[int]:
        return self.pos.col if self.pos else None

    def __str__(self) -> str:
        if self.pos is None:
            return f"{self.kind}: {self.message}"
        return f"{self.kind}: line {self.pos.line}, column {self.pos.col}: {self.message}"


class ParseError(CrawlspaceError):
    kind = "parser error"


class UnboundVariable(CrawlspaceError):
    kind = "unbound variable"


class TypeMismatch(CrawlspaceError):
    kind = "type mismatch"


class UnknownOperator(CrawlspaceError):
    kind = "unknown op"


class RuntimeFault(CrawlspaceError):
    kind = "runtime error"
