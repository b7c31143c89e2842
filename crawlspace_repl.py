import asyncio
import logging
import os
import sys

from crawlspace.crawl_config import ConfigError, load_config
from crawlspace.crawl_printer import Printer
from crawlspace.crawl_runtime import Session
from crawlspace.crawl_server import Crawlspace
from crawlspace.crawl_tools import tools_environment

USAGE = "usage: crawlspace_repl.py [--config PATH] [--serve [PORT]]"


# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return await loop.run_in_executor(None, sys.stdin.readline)


def parse_args(argv):
    """Returns (config_path, serve_port); serve_port is None for the REPL, 0 for the configured port."""
    config_path = None
    serve_port = None
    args = list(argv)
    while args:
        arg = args.pop(0)
        if arg == "--config":
            if not args:
                raise SystemExit(USAGE)
            config_path = args.pop(0)
        elif arg == "--serve":
            serve_port = 0
            if args and args[0].isdigit():
                serve_port = int(args.pop(0))
        else:
            raise SystemExit(USAGE)
    return config_path, serve_port


def configure_logging():
    level = logging.DEBUG if os.environ.get("CRAWLSPACE_DEBUG") else logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(levelname)s: %(message)s")


async def main(argv=None):
    """Serve sessions over TCP when asked to, otherwise run the interactive REPL."""
    configure_logging()
    config_path, serve_port = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        config = load_config(config_path)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)

    if serve_port is not None:
        crawlspace = Crawlspace(config)
        port = serve_port or config.port
        print(f"crawlspace listening on localhost:{port}")
        await crawlspace.listen_and_serve(port)
        return

    print("crawlspace REPL")
    print("Type 'quit' or press Ctrl+D to exit.")

    session = Session(tools_environment(sys.stdout))
    printer = Printer()

    while True:
        try:
            raw = await ainput(config.prompt)
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line == "quit":
                break

            result = session.handle_line(line)

            if result.status == 'error':
                print(result.format_error(), file=sys.stderr)
                continue

            for value in result.values:
                print(printer.pformat(value))

        except EOFError:
            print("\nExiting.")
            break
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting.")
