import asyncio
import io
import threading
import pytest

from crawlspace.crawl_server import Crawlspace, LineReader, RegistrationError
from crawlspace.crawl_config import Config


class Counter:
    def __init__(self):
        self.x = 0

    def Set(self, x: int):
        self.x = x

    def Get(self) -> int:
        return self.x


class FakeWriter:
    def __init__(self):
        self.data = bytearray()

    def write(self, data: bytes):
        self.data.extend(data)

    async def drain(self):
        pass

    def text(self) -> str:
        return self.data.decode("utf-8")


def make_reader(data: bytes, eof: bool = True) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    if eof:
        reader.feed_eof()
    return reader


async def run_session(crawlspace: Crawlspace, data: bytes, eof: bool = True) -> str:
    writer = FakeWriter()
    await asyncio.wait_for(crawlspace.interact(make_reader(data, eof), writer), timeout=5)
    return writer.text()


def test_register_and_unregister():
    cs = Crawlspace()
    cs.register("x", 1)
    with pytest.raises(RegistrationError) as exc:
        cs.register("x", 2)
    assert "Registration 'x' already exists" in str(exc.value)
    with pytest.raises(RegistrationError):
        cs.register("quit", 1)
    cs.unregister("x")
    cs.unregister("never_registered")
    cs.register("x", 3)
    assert cs.registrations() == {"x": 3}


def test_configured_names_are_reserved():
    cs = Crawlspace(Config(reserved=["secret"]))
    with pytest.raises(RegistrationError):
        cs.register("secret", 1)


@pytest.mark.asyncio
async def test_session_banner_and_values():
    cs = Crawlspace()
    cs.register("counter", Counter())
    out = await run_session(cs, b"counter.Set(5)\n\ncounter.Get()\n")
    lines = out.split("\n")
    assert lines[0] == "crawlspace: counter "
    assert lines[1] == "reserved: _ print quit repr "
    assert "> > 5\n> " in out


@pytest.mark.asyncio
async def test_session_errors_are_single_lines():
    cs = Crawlspace()
    out = await run_session(cs, b"nope\n1 == 1\n")
    assert "unbound variable: line 1, column 1: 'nope'\n" in out
    assert "true\n" in out


@pytest.mark.asyncio
async def test_session_print_and_repr():
    cs = Crawlspace()
    out = await run_session(cs, b'print("a", 1)\nrepr("a", 1)\n')
    assert "a 1\n" in out
    assert '"a" 1\n' in out


@pytest.mark.asyncio
async def test_quit_stops_session():
    cs = Crawlspace()
    out = await run_session(cs, b"quit()\n1 == 1\n")
    assert "true" not in out


@pytest.mark.asyncio
async def test_eot_ends_input():
    cs = Crawlspace()
    out = await run_session(cs, b"1 == 1\n\x04", eof=False)
    assert "true\n" in out


@pytest.mark.asyncio
async def test_last_line_without_newline_runs():
    cs = Crawlspace()
    out = await run_session(cs, b"1 != 1")
    assert out.endswith("false\n")


@pytest.mark.asyncio
async def test_reserved_names_cannot_be_redefined():
    cs = Crawlspace()
    out = await run_session(cs, b'define("print")(1)\n')
    assert "is reserved" in out


@pytest.mark.asyncio
async def test_registrations_apply_to_new_sessions_only():
    cs = Crawlspace()
    out = await run_session(cs, b"late\n")
    assert "unbound variable" in out
    cs.register("late", 7)
    out = await run_session(cs, b"late\n")
    assert "7\n" in out


@pytest.mark.asyncio
async def test_line_reader_skips_blank_lines():
    lines = LineReader(make_reader(b"\n  \n a \nb\n"), chunk_size=3)
    assert await lines.next_line() == ("a", False)
    assert await lines.next_line() == ("b", False)
    assert await lines.next_line() == ("", True)


@pytest.mark.asyncio
async def test_serve_over_tcp():
    cs = Crawlspace(Config(prompt="$ "))
    cs.register("counter", Counter())
    server = await cs.serve("127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        writer.write(b"counter.Set(2)\ncounter.Get()\nquit()\n")
        await writer.drain()
        data = await asyncio.wait_for(reader.read(), timeout=5)
        writer.close()
        await writer.wait_closed()
    finally:
        server.close()
        await server.wait_closed()
    text = data.decode("utf-8")
    assert text.startswith("crawlspace: counter")
    assert "$ $ 2\n$ " in text


@pytest.mark.asyncio
async def test_self_referencing_value_keeps_session_alive():
    cyc = []
    cyc.append(cyc)
    cs = Crawlspace()
    cs.register("cyc", cyc)
    out = await run_session(cs, b"cyc\n1 == 1\n")
    assert "[[...]]\n" in out
    assert "true\n" in out


def test_render_failure_is_reported():
    class Unprintable:
        def __repr__(self):
            raise ValueError("no repr")

    cs = Crawlspace()
    session, _ = cs.new_session(io.StringIO(), {"u": Unprintable()})
    text = cs.render(session.handle_line("u"))
    assert text == "runtime error: cannot print result: ValueError: no repr\n"


def test_last_result_name_cannot_be_registered():
    cs = Crawlspace()
    with pytest.raises(RegistrationError):
        cs.register("_", 1)


@pytest.mark.asyncio
async def test_blocked_session_does_not_stall_others():
    gate = threading.Event()
    cs = Crawlspace()
    cs.register("wait", lambda: gate.wait(5))
    blocked = asyncio.ensure_future(run_session(cs, b"wait()\n"))
    try:
        out = await run_session(cs, b"1 == 1\n")
        assert "true\n" in out
        assert not blocked.done()
    finally:
        gate.set()
    assert "true\n" in await blocked
