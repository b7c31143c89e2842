from crawlspace.crawl_errors import (
    CrawlspaceError, ParseError, UnboundVariable, TypeMismatch, UnknownOperator, RuntimeFault,
    Position,
)
from crawlspace.crawl_datatypes import Results, Reference, lower_func, lower_namespace
from crawlspace.crawl_convert import convert
from crawlspace.crawl_parser import parse
from crawlspace.crawl_environment import Environment, new_environment
from crawlspace.crawl_runtime import evaluate, Session, ExecutionResult
from crawlspace.crawl_printer import Printer
from crawlspace.crawl_tools import tools_environment
from crawlspace.crawl_config import Config, load_config
from crawlspace.crawl_server import (
    Crawlspace, RegistrationError, Default,
    register, unregister, interact, serve, listen_and_serve,
)
