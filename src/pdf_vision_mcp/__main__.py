"""Command-line entry point for the pdf-vision-mcp server.

  pdf-vision-mcp                     serve MCP over stdio
  pdf-vision-mcp --test              list tools/resources and exit
  pdf-vision-mcp --log-level DEBUG   more verbose stderr logging
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from . import __version__
from .errors import VisionError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdf-vision-mcp",
        description="MCP server for OCR/vision analysis of PDF pages and embedded images.",
    )
    parser.add_argument("--test", action="store_true", help="Print the tool and resource listing, then exit.")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for stderr logging (default: INFO).",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # Importing the server configures stderr logging.
    from .server import run_server, test_server

    logging.getLogger().setLevel(args.log_level)

    try:
        asyncio.run(test_server() if args.test else run_server())
    except KeyboardInterrupt:
        print("\nServer stopped by user", file=sys.stderr)
    except VisionError as exc:
        # Startup configuration problems; the server has already logged them.
        print(f"pdf-vision-mcp: {exc.message}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
