"""
A registry of live values, exposed to remote expression sessions.

Connect with telnet or netcat and evaluate expressions against whatever has
been registered::

    import crawlspace

    crawlspace.register("counter", Counter())
    asyncio.run(crawlspace.listen_and_serve(2222))

    > counter.Set(5)
    > counter.Get()
    5
"""
import asyncio
import concurrent.futures
import io
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

import pystache

from crawlspace.crawl_config import Config
from crawlspace.crawl_environment import Environment, new_environment
from crawlspace.crawl_printer import Printer
from crawlspace.crawl_errors import RuntimeFault
from crawlspace.crawl_runtime import ExecutionResult, Session, LAST_RESULT

logger = logging.getLogger(__name__)

RESERVED = ("quit", "print", "repr", LAST_RESULT)

# a line ending in ASCII EOT (Ctrl-D over telnet) ends the session
ASCII_EOT = b"\x04"


class RegistrationError(ValueError):
    pass


class Crawlspace:
    """A registry of values to expose via a remote shell.

    Registrations apply to every session started afterwards, not to sessions
    already running.
    """
    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self.reserved = set(RESERVED) | set(self.config.reserved)
        self._lock = threading.Lock()
        self._registrations: Dict[str, Any] = {}
        self.printer = Printer()

    def register(self, name: str, value: Any):
        with self._lock:
            if name in self._registrations or name in self.reserved:
                raise RegistrationError(f"Registration {name!r} already exists")
            self._registrations[name] = value
        logger.debug("registered %r", name)

    def unregister(self, name: str):
        with self._lock:
            self._registrations.pop(name, None)

    def registrations(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._registrations)

    def banner(self, registered: List[str]) -> str:
        renderer = pystache.Renderer(escape=lambda u: u)
        return renderer.render(self.config.banner, {
            "registered": registered,
            "reserved": sorted(self.reserved),
        })

    def _text(self, value: Any) -> str:
        return value if isinstance(value, str) else self.printer.pformat(value)

    def new_session(self, out: io.StringIO,
                    registrations: Optional[Dict[str, Any]] = None) -> Tuple[Session, Dict[str, bool]]:
        """A session seeded with the current registrations.

        `print` and `repr` write to ``out``; `quit()` sets the returned
        state's ``quit`` flag.
        """
        env: Environment = new_environment()
        env.update(self.registrations() if registrations is None else registrations)
        state = {"quit": False}

        def quit_():
            state["quit"] = True

        def print_(*values):
            out.write(" ".join(self._text(v) for v in values) + "\n")

        def repr_(*values):
            out.write(" ".join(self.printer.pformat(v) for v in values) + "\n")

        env["quit"] = quit_
        env["print"] = print_
        env["repr"] = repr_
        env.reserve(*self.reserved)
        return Session(env), state

    async def interact(self, reader: asyncio.StreamReader, writer) -> None:
        """Run one session over a pair of streams.

        Returns at end of input or after `quit()`.
        """
        out = io.StringIO()
        lines = LineReader(reader)
        registrations = self.registrations()
        session, state = self.new_session(out, registrations)
        registered = sorted(registrations)
        writer.write((self.banner(registered) + "\n").encode("utf-8"))
        loop = asyncio.get_running_loop()
        # one worker thread per session
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="crawlspace-session")
        try:
            while not state["quit"]:
                writer.write(self.config.prompt.encode("utf-8"))
                await writer.drain()
                line, eof = await lines.next_line()
                if not line:
                    break
                result: ExecutionResult = await loop.run_in_executor(executor, session.handle_line, line)
                output = out.getvalue()
                out.seek(0)
                out.truncate()
                writer.write((output + self.render(result)).encode("utf-8"))
                await writer.drain()
                if eof:
                    break
        finally:
            executor.shutdown(wait=False)

    def render(self, result: ExecutionResult) -> str:
        if result.status == 'error':
            return f"{result.error_message}\n"
        try:
            return "".join(self.printer.pformat(v) + "\n" for v in result.values)
        except Exception as e:
            logger.warning("cannot print result of %r", result.source, exc_info=True)
            return f"{RuntimeFault(f'cannot print result: {type(e).__name__}: {e}')}\n"

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        peer = writer.get_extra_info("peername")
        logger.info("session opened from %s", peer)
        try:
            await self.interact(reader, writer)
        except ConnectionError as e:
            logger.info("session from %s dropped: %s", peer, e)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass
            logger.info("session from %s closed", peer)

    async def serve(self, host: Optional[str] = None, port: Optional[int] = None) -> asyncio.AbstractServer:
        """Start accepting connections, one session each.

        Careful: a host reachable from other machines exposes the whole
        process to them.
        """
        host = self.config.host if host is None else host
        port = self.config.port if port is None else port
        server = await asyncio.start_server(self._handle_connection, host, port)
        logger.info("serving on %s", ", ".join(str(s.getsockname()) for s in server.sockets))
        return server

    async def listen_and_serve(self, port: Optional[int] = None) -> None:
        server = await self.serve("localhost", port)
        async with server:
            await server.serve_forever()


class LineReader:
    """Splits stream input into lines.

    A read that ends in ASCII EOT ends the input, as if the peer had closed.
    """
    def __init__(self, reader: asyncio.StreamReader, chunk_size: int = 4096):
        self.reader = reader
        self.chunk_size = chunk_size
        self.buffer = b""
        self.eof = False

    async def _fill(self):
        chunk = await self.reader.read(self.chunk_size)
        if not chunk:
            self.eof = True
        elif chunk.endswith(ASCII_EOT):
            self.buffer += chunk[:-1]
            self.eof = True
        else:
            self.buffer += chunk

    async def readline(self) -> Tuple[str, bool]:
        """The next line without its newline, and whether input ended with it."""
        while b"\n" not in self.buffer and not self.eof:
            await self._fill()
        if b"\n" in self.buffer:
            raw, self.buffer = self.buffer.split(b"\n", 1)
            last = self.eof and not self.buffer
        else:
            raw, self.buffer, last = self.buffer, b"", True
        return raw.decode("utf-8", errors="replace"), last

    async def next_line(self) -> Tuple[str, bool]:
        """The next non-blank line, stripped, and whether input ended with it."""
        while True:
            text, last = await self.readline()
            text = text.strip()
            if text or last:
                return text, last


Default = Crawlspace()

register = Default.register
unregister = Default.unregister
interact = Default.interact
serve = Default.serve
listen_and_serve = Default.listen_and_serve
