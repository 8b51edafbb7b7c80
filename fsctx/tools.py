"""Tool registry: one pydantic argument model and one handler per operation.

``TOOLS`` is the routing table from wire name to tool. Handlers receive
validated arguments and the ``FsTools`` state, resolve every path argument
through the session context and return the text shown to the caller.
"""
import json
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, Field, ValidationError

from fsctx import fs
from fsctx.config import DEFAULT_SEARCH_CONTEXT_LINES, DEFAULT_SEARCH_MAX_RESULTS
from fsctx.errors import InvalidArgumentsError, MethodNotFoundError, ToolExecutionError
from fsctx.search import HighlightStyle, SearchOptions, search
from fsctx.state import FsTools

PATH_HELP = "Can be absolute, or relative to the session's working directory."


class ToolArgs(BaseModel):
    session_id: Optional[str] = Field(
        None, description="Optional session identifier. Omitted ids share the 'default' session."
    )


class ListArgs(ToolArgs):
    """List file system contents with session context support and globbing.

    Hidden files and entries matched by .gitignore/.ignore files are skipped.
    """

    path: Optional[str] = Field(
        None,
        description=(
            f"Directory path or glob pattern. {PATH_HELP} Can include wildcards like 'src/**/*'. "
            "Defaults to the working directory."
        ),
    )
    recursive: bool = Field(False, description="Recurse into directories (ignored when path contains a glob).")
    include_metadata: bool = Field(False, description="Include size, created and last modified times.")


class ReadArgs(ToolArgs):
    """Read utf8 contents from one or more files. Non-utf8 bytes are replaced."""

    paths: List[str] = Field(..., description=f"Path or paths to read. {PATH_HELP}")
    max_length: Optional[int] = Field(
        None, ge=0, description="Max length in bytes to read per file. Longer files are truncated and marked."
    )


class WriteArgs(ToolArgs):
    """Write contents to a file, optionally creating any directories needed.

    For very large files, consider several append calls.
    """

    path: str = Field(..., description=f"Path to write to. {PATH_HELP}")
    contents: str = Field(..., description="Full file contents, or the next chunk when appending.")
    overwrite: bool = Field(
        False,
        description=(
            "Replace an existing file. Only use after reading the file. Fails if the file does not exist. "
            "Mutually exclusive with append."
        ),
    )
    append: bool = Field(
        False, description="Append to the file, creating it if needed. Mutually exclusive with overwrite."
    )
    create_directories: bool = Field(True, description="Create missing parent directories.")


class DeleteArgs(ToolArgs):
    """Remove a file from disk."""

    path: str = Field(..., description=f"Path to delete. {PATH_HELP}")


class MoveArgs(ToolArgs):
    """Move a file from one location to another."""

    source: str = Field(..., description=f"Path to move from. {PATH_HELP}")
    destination: str = Field(..., description=f"Path to move to. {PATH_HELP}")
    overwrite: bool = Field(False, description="Replace the destination if it exists.")
    create_directories: bool = Field(True, description="Create missing parent directories of the destination.")


class SearchArgs(ToolArgs):
    """Search for regex patterns in file contents."""

    pattern: str = Field(..., description="Regular expression to search for.")
    path: Optional[str] = Field(
        None, description=f"File or directory to search. {PATH_HELP} Defaults to the working directory."
    )
    case_sensitive: bool = Field(False, description="Case sensitive matching.")
    include_extensions: Optional[List[str]] = Field(
        None, description='Only search files with these extensions, e.g. ["py", "md"].'
    )
    max_results: int = Field(DEFAULT_SEARCH_MAX_RESULTS, ge=1, description="Maximum number of matches to return.")
    highlight_style: HighlightStyle = Field(HighlightStyle.BOX, description="How matches are marked in the output.")
    context_lines: int = Field(
        DEFAULT_SEARCH_CONTEXT_LINES, ge=0, description="Lines of context before and after each match."
    )


class SetWorkingDirectoryArgs(ToolArgs):
    """Set the working directory of a session. Relative paths in later calls resolve against it."""

    path: str = Field(..., description="New working directory. Relative values resolve against the current one.")


# ========= handlers =========
def _list(args: ListArgs, state: FsTools) -> str:
    base, pattern = fs.split_glob(args.path or ".")
    return fs.list_directory(
        state.resolve_path(base, args.session_id),
        pattern=pattern,
        recursive=args.recursive,
        include_metadata=args.include_metadata,
    )


def _read(args: ReadArgs, state: FsTools) -> str:
    return fs.read_files(args.paths, lambda p: state.resolve_path(p, args.session_id), args.max_length)


def _write(args: WriteArgs, state: FsTools) -> str:
    return fs.write_file(
        state.resolve_path(args.path, args.session_id),
        args.contents,
        overwrite=args.overwrite,
        append=args.append,
        create_directories=args.create_directories,
    )


def _delete(args: DeleteArgs, state: FsTools) -> str:
    return fs.delete_file(state.resolve_path(args.path, args.session_id))


def _move(args: MoveArgs, state: FsTools) -> str:
    return fs.move_file(
        state.resolve_path(args.source, args.session_id),
        state.resolve_path(args.destination, args.session_id),
        overwrite=args.overwrite,
        create_directories=args.create_directories,
    )


def _search(args: SearchArgs, state: FsTools) -> str:
    options = SearchOptions(
        case_sensitive=args.case_sensitive,
        include_extensions=args.include_extensions,
        max_results=args.max_results,
        highlight_style=args.highlight_style,
        context_lines=args.context_lines,
    )
    return search(state.resolve_path(args.path or ".", args.session_id), args.pattern, options)


def _set_working_directory(args: SetWorkingDirectoryArgs, state: FsTools) -> str:
    context = state.set_working_directory(args.path, args.session_id)
    return f"Set context to {context}"


@dataclass
class Tool:
    name: str
    args_model: Type[ToolArgs]
    handler: Callable[[Any, FsTools], str]
    examples: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)

    def description(self) -> str:
        text = " ".join((self.args_model.__doc__ or "").split())
        if self.examples:
            rendered = "\n".join(f"- {desc}: {json.dumps(item)}" for desc, item in self.examples)
            text += f"\n\nExamples:\n{rendered}"
        return text

    def input_schema(self) -> Dict[str, Any]:
        schema = self.args_model.model_json_schema()
        schema.pop("title", None)
        schema.pop("description", None)
        return schema


TOOLS: Dict[str, Tool] = {
    tool.name: tool
    for tool in (
        Tool("list", ListArgs, _list, [
            ("Finding all python files in a project after setting the working directory, with metadata",
             {"path": "src/**/*.py", "include_metadata": True}),
            ("Recursively showing all files by absolute path", {"path": "/some/absolute/path", "recursive": True}),
        ]),
        Tool("read", ReadArgs, _read, [
            ("Reading a file relative to the working directory", {"paths": ["src/main.py"]}),
            ("Reading the head of a file by absolute path",
             {"paths": ["/some/absolute/path/src/main.py"], "max_length": 100}),
            ("Reading several files at once", {"paths": ["src/main.py", "src/tools.py"]}),
        ]),
        Tool("write", WriteArgs, _write, [
            ("Creating a new file relative to the working directory",
             {"path": "src/main.py", "contents": "def main():\n    pass\n"}),
            ("Intentionally overwriting a file",
             {"path": "/some/absolute/path/src/main.py", "contents": "print('hi')\n", "overwrite": True}),
            ("Appending to a file", {"path": "tests/test_main.py", "contents": "\n\ndef test_more():\n    assert True\n",
                                     "append": True}),
        ]),
        Tool("delete", DeleteArgs, _delete, [
            ("Deleting a file in a named session", {"path": "src/old.py", "session_id": "my-project"}),
        ]),
        Tool("move", MoveArgs, _move, [
            ("Renaming a file, creating the directory if needed",
             {"source": "src/tool.py", "destination": "src/tool/__init__.py"}),
            ("Moving a file over an existing one",
             {"source": "/some/absolute/path/a.py", "destination": "/some/absolute/path/b.py", "overwrite": True}),
        ]),
        Tool("search", SearchArgs, _search, [
            ("Finding function definitions in python files",
             {"pattern": "def main", "path": "src/", "include_extensions": ["py"], "max_results": 10}),
            ("Finding TODO comments with emphasis highlighting",
             {"pattern": "TODO|FIXME", "highlight_style": "emphasis"}),
        ]),
        Tool("set_working_directory", SetWorkingDirectoryArgs, _set_working_directory, [
            ("Setting the working directory to a project", {"path": "/usr/local/projects/cobol"}),
        ]),
    )
}


@lru_cache(maxsize=None)
def tools_schema() -> Tuple[Dict[str, Any], ...]:
    return tuple(
        {"name": tool.name, "description": tool.description(), "inputSchema": tool.input_schema()}
        for tool in TOOLS.values()
    )


def _validation_summary(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "arguments"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


def call_tool(state: FsTools, name: Any, arguments: Optional[Dict[str, Any]]) -> str:
    tool = TOOLS.get(name) if isinstance(name, str) else None
    if tool is None:
        raise MethodNotFoundError(f"Unknown tool: {name}")

    try:
        args = tool.args_model.model_validate({} if arguments is None else arguments)
    except ValidationError as exc:
        raise InvalidArgumentsError(f"Invalid arguments for {name}: {_validation_summary(exc)}") from exc

    try:
        return tool.handler(args, state)
    except OSError as exc:
        raise ToolExecutionError(str(exc)) from exc
