"""
Entry points for evaluating expressions, and the per-session runner.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from crawlspace.crawl_ast import Evaluable
from crawlspace.crawl_datatypes import Results
from crawlspace.crawl_environment import Environment, new_environment
from crawlspace.crawl_errors import CrawlspaceError, RuntimeFault
from crawlspace.crawl_parser import parse

logger = logging.getLogger(__name__)

LAST_RESULT = "_"


def evaluate(expression: str, env: Environment) -> List[Any]:
    """Parse ``expression`` and run it against ``env``.

    Returns the list of results. Crawlspace errors propagate unchanged; any
    other exception raised by host code while evaluating is wrapped in a
    RuntimeFault.
    """
    node: Evaluable = parse(expression)
    try:
        return node.run(env)
    except CrawlspaceError:
        raise
    except Exception as e:
        raise RuntimeFault(f"panic: {type(e).__name__}: {e}") from e


def source_context(source: str, line: int, col: Optional[int], radius: int = 2) -> str:
    """Render the lines around ``line`` with a caret under ``col``."""
    lines = source.splitlines()
    if not line or line < 1 or line > len(lines):
        return ""
    start = max(1, line - radius)
    end = min(len(lines), line + radius)
    width = len(str(end))
    out = []
    for i in range(start, end + 1):
        prefix = ">" if i == line else " "
        out.append(f"{prefix} {str(i).rjust(width)} | {lines[i - 1]}")
        if i == line and col is not None:
            out.append(f"  {' ' * width} | {' ' * max(col - 1, 0)}^")
    return "\n".join(out)


Token = Dict[str, Any]


@dataclass
class ExecutionResult:
    """The outcome of evaluating one line."""
    status: Literal['success', 'error']
    values: List[Any] = field(default_factory=list)
    error_message: Optional[str] = None
    error_token: Optional[Token] = None
    source: str = ""

    def format_error(self) -> str:
        """The error message followed by the offending source, when known."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and self.error_token.get('line') is not None:
            context = source_context(self.source, self.error_token['line'], self.error_token.get('col'))
            if context:
                return f"{msg}\n{context}"
        return msg


class Session:
    """Evaluates lines of input against one Environment.

    After each successful evaluation the results are bound to `_`, so the
    next line can refer to them (and spread them into a call).
    """
    def __init__(self, env: Optional[Environment] = None):
        self.env = env if env is not None else new_environment()
        self.env.reserve(LAST_RESULT)

    def handle_line(self, line: str) -> ExecutionResult:
        source = line.strip()
        if not source:
            return ExecutionResult(status='success', source=source)
        try:
            values = evaluate(source, self.env)
        except CrawlspaceError as e:
            logger.debug("evaluation of %r failed: %s", source, e, exc_info=e.__cause__ is not None)
            token = {'line': e.line, 'col': e.col, 'kind': e.kind} if e.pos else None
            return ExecutionResult(status='error', error_message=str(e), error_token=token, source=source)
        self.env[LAST_RESULT] = Results(*values)
        return ExecutionResult(status='success', values=values, source=source)
