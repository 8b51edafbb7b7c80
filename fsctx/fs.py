import os
import re
import time
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

import structlog

from fsctx.config import (
    APPEND_SEAM_LINES, GIT_EXCLUDE_FILE, GLOB_CHARS, IGNORE_FILES, READ_SEPARATOR_LENGTH,
)
from fsctx.errors import FsctxError, ToolExecutionError
from fsctx.utils import format_ago, format_size, random_token

logger = structlog.get_logger(__name__)


# ========= Globs and ignore files =========
def split_glob(path_str: str) -> Tuple[str, Optional[str]]:
    """Split ``src/**/*.py`` into (``src``, ``**/*.py``).

    The directory part ends at the last separator before the first glob
    character. Paths without glob characters come back unchanged with no pattern.
    """
    first = min((path_str.find(c) for c in GLOB_CHARS if c in path_str), default=-1)
    if first < 0:
        return path_str, None
    sep = max(path_str.rfind("/", 0, first), path_str.rfind("\\", 0, first))
    if sep < 0:
        return "", path_str
    if sep == 0:
        return path_str[:1], path_str[1:]
    return path_str[:sep], path_str[sep + 1:]


def compile_glob(pattern: str) -> "re.Pattern[str]":
    """Translate a glob into a regex over ``/``-separated relative paths.

    ``*`` and ``?`` stay within one path segment, ``**/`` matches any number of
    leading directories and a bare ``**`` matches anything.
    """
    out = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif c == "*":
            out.append("[^/]*")
            i += 1
        elif c == "?":
            out.append("[^/]")
            i += 1
        elif c == "[":
            end = pattern.find("]", i + 2)
            if end < 0:
                out.append(re.escape(c))
                i += 1
                continue
            body = pattern[i + 1:end]
            if body.startswith("!"):
                body = "^" + body[1:]
            out.append(f"[{body.replace(chr(92), chr(92) * 2)}]")
            i = end + 1
        else:
            out.append(re.escape(c))
            i += 1
    return re.compile("".join(out) + r"\Z")


class IgnoreRule:
    def __init__(self, anchor: Path, line: str):
        self.anchor = anchor
        self.negated = line.startswith("!")
        if self.negated:
            line = line[1:]
        self.dir_only = line.endswith("/")
        line = line.rstrip("/")
        self.anchored = "/" in line
        self.regex = compile_glob(line.lstrip("/"))

    def matches(self, path: Path, is_dir: bool) -> bool:
        if self.dir_only and not is_dir:
            return False
        if self.anchored:
            try:
                rel = path.relative_to(self.anchor).as_posix()
            except ValueError:
                return False
            return bool(self.regex.match(rel))
        return bool(self.regex.match(path.name))


def _read_ignore_file(ignore_file: Path, anchor: Path) -> List[IgnoreRule]:
    if not ignore_file.is_file():
        return []
    try:
        lines = ignore_file.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError as exc:
        logger.warning("ignore_file_unreadable", path=str(ignore_file), error=str(exc))
        return []
    rules = []
    for line in lines:
        line = line.strip()
        if line and not line.startswith("#"):
            rules.append(IgnoreRule(anchor, line))
    return rules


def load_ignore_rules(directory: Path) -> List[IgnoreRule]:
    """Rules declared in ``directory``. A repository root also contributes .git/info/exclude."""
    rules = []
    if (directory / ".git").is_dir():
        rules.extend(_read_ignore_file(directory / GIT_EXCLUDE_FILE, directory))
    for name in IGNORE_FILES:
        rules.extend(_read_ignore_file(directory / name, directory))
    return rules


def inherited_ignore_rules(base: Path) -> List[IgnoreRule]:
    """Rules from the directories above ``base``, up to the enclosing repository root.

    Outer directories come first so rules closer to ``base`` win.
    """
    ancestors = []
    if not (base / ".git").exists():
        for directory in base.parents:
            ancestors.append(directory)
            if (directory / ".git").exists():
                break
    rules = []
    for directory in reversed(ancestors):
        rules.extend(load_ignore_rules(directory))
    return rules


def is_ignored(path: Path, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    ignored = False
    for rule in rules:
        if rule.matches(path, is_dir):
            ignored = not rule.negated
    return ignored


def walk(base: Path, max_depth: Optional[int]) -> Iterator[Tuple[Path, bool]]:
    """Yield (path, is_dir) below ``base``, skipping hidden and ignored entries."""
    stack: List[Tuple[Path, int, List[IgnoreRule]]] = [
        (base, 1, inherited_ignore_rules(base) + load_ignore_rules(base))
    ]
    while stack:
        directory, depth, rules = stack.pop()
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as exc:
            logger.warning("walk_unreadable_directory", path=str(directory), error=str(exc))
            continue
        for entry in entries:
            if entry.name.startswith("."):
                continue
            path = Path(entry.path)
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
            except OSError:
                is_dir = False
            if is_ignored(path, is_dir, rules):
                continue
            yield path, is_dir
            if is_dir and (max_depth is None or depth < max_depth):
                stack.append((path, depth + 1, rules + load_ignore_rules(path)))


# ========= list =========
def _metadata_suffix(path: Path, now: float) -> str:
    stat = path.stat()
    created = getattr(stat, "st_birthtime", stat.st_ctime)
    return (
        f" | {format_size(stat.st_size)}"
        f" | created {format_ago(now - created)}"
        f" | modified {format_ago(now - stat.st_mtime)}"
    )


def list_directory(
    base: Path,
    pattern: Optional[str] = None,
    recursive: bool = False,
    include_metadata: bool = False,
) -> str:
    if not base.is_dir():
        raise ToolExecutionError(f"Path is not a directory: {base}")

    glob = compile_glob(pattern) if pattern else None
    max_depth = None if (glob is not None or recursive) else 1
    now = time.time()

    entries = []
    for path, is_dir in walk(base, max_depth):
        rel = path.relative_to(base).as_posix()
        if glob is not None and not glob.match(rel):
            continue
        line = rel + "/" if is_dir else rel
        if include_metadata:
            try:
                line += _metadata_suffix(path, now)
            except OSError as exc:
                raise ToolExecutionError(f"Unable to read metadata for {path}: {exc}") from exc
        entries.append(line)
    entries.sort()

    return f"All paths relative to {base}:\n\n" + "\n".join(entries)


# ========= read =========
def _read_one(path: Path, max_length: Optional[int], separator: str) -> str:
    if not path.exists():
        raise ToolExecutionError(f"{path} does not exist")

    try:
        actual_length = path.stat().st_size
        if max_length is not None and max_length < actual_length:
            with open(path, "rb") as handle:
                head = handle.read(max_length)
            label = f"{path}, FULL LENGTH: {actual_length}, TRUNCATED LENGTH: {max_length}"
            return (
                f"=={separator} BEGIN TRUNCATED {label} {separator}==\n"
                f"{head.decode('utf-8', errors='replace')}\n"
                f"=={separator} END TRUNCATED {label} {separator}==\n"
            )
        raw = path.read_bytes()
    except OSError as exc:
        raise ToolExecutionError(f"Unable to read {path}: {exc}") from exc

    return (
        f"=={separator} BEGIN {path}, LENGTH: {len(raw)} {separator}==\n"
        f"{raw.decode('utf-8', errors='replace')}\n"
        f"=={separator} END {path}, LENGTH: {len(raw)} {separator}==\n"
    )


def read_files(
    paths: Sequence[str],
    resolve: Callable[[str], Path],
    max_length: Optional[int] = None,
) -> str:
    """Read every path, reporting per-path failures inline instead of failing the call."""
    separator = random_token(READ_SEPARATOR_LENGTH)
    blocks = []
    for raw_path in paths:
        try:
            blocks.append(_read_one(resolve(raw_path), max_length, separator))
        except (FsctxError, OSError) as exc:
            blocks.append(
                f"=={separator} BEGIN ERROR {raw_path} {separator}==\n"
                f"{exc}\n"
                f"=={separator} END ERROR {raw_path} {separator}==\n"
            )
    return "".join(blocks)


# ========= write =========
def _read_tail(path: Path, lines: int) -> str:
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""
    return "\n".join(content.splitlines()[-lines:])


def _format_seam(tail: str, appended: str, lines_to_show: int) -> str:
    result = ""
    if tail:
        result += f"\nContext around append point (last {lines_to_show} lines):\n{tail}\n"
    result += "\n<<< APPENDED >>>\n"

    appended_lines = appended.splitlines()
    shown = appended_lines[:lines_to_show]
    if shown:
        result += "\n".join(shown)
        if len(appended_lines) > len(shown):
            result += f"\n... ({len(appended_lines) - len(shown)} more lines)"
    return result


def write_file(
    path: Path,
    contents: str,
    overwrite: bool = False,
    append: bool = False,
    create_directories: bool = True,
) -> str:
    if append and overwrite:
        return "`overwrite` and `append` are mutually exclusive. No filesystem operation has been performed"

    if create_directories:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ToolExecutionError(f"Failed to create directories for {path.parent}: {exc}") from exc

    tail = _read_tail(path, APPEND_SEAM_LINES) if append else ""

    if append:
        flags = os.O_WRONLY | os.O_CREAT | os.O_APPEND
    elif overwrite:
        flags = os.O_WRONLY | os.O_TRUNC
    else:
        flags = os.O_WRONLY | os.O_CREAT | os.O_EXCL

    data = contents.encode("utf-8")
    try:
        fd = os.open(path, flags, 0o666)
    except FileExistsError:
        return (
            f'File {path} already exists, use "overwrite": true if you intend to replace it, '
            'or "append": true if you intend to add content to the end of the file.'
        )
    except OSError as exc:
        raise ToolExecutionError(f"Failed to open {path} for writing: {exc}") from exc

    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        total = path.stat().st_size
    except OSError as exc:
        raise ToolExecutionError(f"Failed to write to {path}: {exc}") from exc

    result = f"Successfully wrote {len(data)} bytes to {path} (total: {format_size(total)})"
    if append and (tail or contents):
        result += _format_seam(tail, contents, APPEND_SEAM_LINES)
    logger.info("file_written", path=str(path), bytes=len(data), append=append, overwrite=overwrite)
    return result


# ========= delete / move =========
def delete_file(path: Path) -> str:
    try:
        path.unlink()
    except OSError as exc:
        raise ToolExecutionError(f"Unable to delete {path}: {exc}") from exc
    logger.info("file_deleted", path=str(path))
    return f"Successfully deleted {path}"


def move_file(source: Path, destination: Path, overwrite: bool = False, create_directories: bool = True) -> str:
    if destination.exists() and not overwrite:
        raise ToolExecutionError(f"{destination} already exists, use `overwrite` to intentionally replace it")
    if not source.exists():
        raise ToolExecutionError(f"{source} not found")

    try:
        if create_directories:
            destination.parent.mkdir(parents=True, exist_ok=True)
        os.replace(source, destination)
    except OSError as exc:
        raise ToolExecutionError(f"Unable to move {source} to {destination}: {exc}") from exc

    logger.info("file_moved", source=str(source), destination=str(destination))
    return f"Successfully moved {source} to {destination}"
