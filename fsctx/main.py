import argparse
import io
import json
import sys
from typing import Any, Dict, List, Optional, TextIO

import structlog

from fsctx.config import SERVER_VERSION, config
from fsctx.errors import FsctxError, StorageError
from fsctx.logger import setup_logging
from fsctx.server import handle_request
from fsctx.state import FsTools
from fsctx.tools import call_tool

logger = structlog.get_logger(__name__)


def write_response(out: TextIO, response: Dict[str, Any]) -> None:
    """Write one JSON-RPC response line."""
    try:
        out.write(json.dumps(response, ensure_ascii=False) + "\n")
    except UnicodeEncodeError as exc:
        logger.warning("response_write_fallback", error=str(exc))
        out.write(json.dumps(response, ensure_ascii=True) + "\n")
    out.flush()


def serve(instream: TextIO, outstream: TextIO, state: FsTools) -> None:
    """Answer requests line by line until end of input.

    Lines that are not a JSON object with a string ``method`` are dropped
    without a response.
    """
    for line in instream:
        line = line.strip()
        if not line:
            continue
        logger.debug("request_line", line=line)
        try:
            request = json.loads(line)
        except json.JSONDecodeError as exc:
            logger.warning("invalid_json", error=str(exc))
            continue
        if not isinstance(request, dict) or not isinstance(request.get("method"), str):
            logger.warning("invalid_request", line=line)
            continue

        response = handle_request(request, state)
        if response is not None:
            logger.debug("response", req_id=response.get("id"), error="error" in response)
            write_response(outstream, response)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fsctx",
        description="Filesystem MCP server with persistent per-session working directories",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {SERVER_VERSION}")
    parser.add_argument("--log-location", help="Append JSON logs to this file (overrides LOG_LOCATION env)")
    parser.add_argument("--log-level", help="Log level name (overrides LOG_LEVEL env)")

    commands = parser.add_subparsers(dest="command")
    commands.add_parser("serve", help="Answer JSON-RPC requests on stdin (default)")

    session_parent = argparse.ArgumentParser(add_help=False)
    session_parent.add_argument("--session-id", help="Session whose working directory is used")

    list_cmd = commands.add_parser("list", parents=[session_parent], help="List directory contents")
    list_cmd.add_argument("path", nargs="?", help="Directory or glob, e.g. 'src/**/*.py'")
    list_cmd.add_argument("--recursive", action="store_true")
    list_cmd.add_argument("--include-metadata", action="store_true")

    read_cmd = commands.add_parser("read", parents=[session_parent], help="Read one or more files")
    read_cmd.add_argument("paths", nargs="+")
    read_cmd.add_argument("--max-length", type=int)

    write_cmd = commands.add_parser("write", parents=[session_parent], help="Write a file")
    write_cmd.add_argument("path")
    write_cmd.add_argument("contents")
    write_cmd.add_argument("--overwrite", action="store_true")
    write_cmd.add_argument("--append", action="store_true")
    write_cmd.add_argument("--no-create-directories", dest="create_directories", action="store_false")

    delete_cmd = commands.add_parser("delete", parents=[session_parent], help="Delete a file")
    delete_cmd.add_argument("path")

    move_cmd = commands.add_parser("move", parents=[session_parent], help="Move a file")
    move_cmd.add_argument("source")
    move_cmd.add_argument("destination")
    move_cmd.add_argument("--overwrite", action="store_true")
    move_cmd.add_argument("--no-create-directories", dest="create_directories", action="store_false")

    search_cmd = commands.add_parser("search", parents=[session_parent], help="Search file contents")
    search_cmd.add_argument("pattern")
    search_cmd.add_argument("path", nargs="?")
    search_cmd.add_argument("--case-sensitive", action="store_true")
    search_cmd.add_argument("--include-extensions", nargs="+")
    search_cmd.add_argument("--max-results", type=int)
    search_cmd.add_argument("--highlight-style", choices=["none", "box", "emphasis", "ansi", "markdown"])
    search_cmd.add_argument("--context-lines", type=int)

    cwd_cmd = commands.add_parser(
        "set-working-directory", parents=[session_parent], help="Set a session's working directory"
    )
    cwd_cmd.add_argument("path")
    return parser


def tool_arguments(args: argparse.Namespace) -> Dict[str, Any]:
    skip = {"command", "log_location", "log_level"}
    return {key: value for key, value in vars(args).items() if key not in skip and value is not None}


def main(argv: Optional[List[str]] = None) -> int:
    config.load_from_env()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.log_location:
        config.LOG_LOCATION = args.log_location
    if args.log_level:
        config.LOG_LEVEL = args.log_level.upper()
    setup_logging(config.LOG_LOCATION, config.LOG_LEVEL)

    try:
        state = FsTools.from_file(config.SESSION_FILE)
    except StorageError as exc:
        logger.error("startup_failed", error=str(exc))
        print(f"fsctx: {exc}", file=sys.stderr)
        return 1

    command = args.command or "serve"
    if command == "serve":
        logger.info("server_started", session_file=config.SESSION_FILE, version=SERVER_VERSION)
        instream = io.TextIOWrapper(sys.stdin.buffer, encoding="utf-8", errors="replace")
        outstream = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", line_buffering=True)
        serve(instream, outstream, state)
        logger.info("server_stopped")
        return 0

    try:
        print(call_tool(state, command.replace("-", "_"), tool_arguments(args)))
    except FsctxError as exc:
        print(f"fsctx: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
