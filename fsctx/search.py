import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

import structlog

from fsctx.config import (
    DEFAULT_SEARCH_CONTEXT_LINES, DEFAULT_SEARCH_MAX_RESULTS,
    SEARCH_BINARY_EXTENSIONS, SEARCH_EXCLUDED_DIRS,
)
from fsctx.errors import ToolExecutionError

logger = structlog.get_logger(__name__)


class HighlightStyle(str, Enum):
    NONE = "none"
    BOX = "box"
    EMPHASIS = "emphasis"
    ANSI = "ansi"
    MARKDOWN = "markdown"


_MARKERS = {
    HighlightStyle.BOX: ("┌─", "─┐"),
    HighlightStyle.EMPHASIS: ("⦗", "⦘"),
    HighlightStyle.ANSI: ("\x1b[93m", "\x1b[0m"),
    HighlightStyle.MARKDOWN: ("**", "**"),
}


def highlight(text: str, regex: "re.Pattern[str]", style: HighlightStyle) -> str:
    markers = _MARKERS.get(style)
    if markers is None:
        return text
    prefix, suffix = markers
    return regex.sub(lambda m: f"{prefix}{m.group(0)}{suffix}", text)


@dataclass
class SearchResult:
    file_path: str
    line_number: int
    line_content: str
    context_before: List[str] = field(default_factory=list)
    context_after: List[str] = field(default_factory=list)


@dataclass
class SearchOptions:
    case_sensitive: bool = False
    include_extensions: Optional[Sequence[str]] = None
    max_results: int = DEFAULT_SEARCH_MAX_RESULTS
    highlight_style: HighlightStyle = HighlightStyle.BOX
    context_lines: int = DEFAULT_SEARCH_CONTEXT_LINES


def should_search_file(path: Path, include_extensions: Optional[Sequence[str]]) -> bool:
    ext = path.suffix[1:]
    if include_extensions is not None:
        return bool(ext) and ext in {e.lstrip(".") for e in include_extensions}
    return ext not in SEARCH_BINARY_EXTENSIONS


def iter_files(root: Path, include_extensions: Optional[Sequence[str]]) -> Iterator[Path]:
    if root.is_file():
        if should_search_file(root, include_extensions):
            yield root
        return
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in SEARCH_EXCLUDED_DIRS)
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if should_search_file(path, include_extensions):
                yield path


def _format_results(results: List[SearchResult], regex, pattern: str, options: SearchOptions, total: int) -> str:
    output = f'Found {len(results)} matches for pattern "{pattern}":\n\n'
    for result in results:
        first_before = result.line_number - len(result.context_before)
        for offset, line in enumerate(result.context_before):
            output += f"{result.file_path}:{first_before + offset}: {line.strip()}\n"

        highlighted = highlight(result.line_content, regex, options.highlight_style)
        output += f"{result.file_path}:{result.line_number}: {highlighted.strip()}\n"

        for offset, line in enumerate(result.context_after, start=1):
            output += f"{result.file_path}:{result.line_number + offset}: {line.strip()}\n"

        if options.context_lines > 0 and (result.context_before or result.context_after):
            output += "--\n"

    if total > options.max_results:
        output += f"\n... and {total - options.max_results} more matches (limit {options.max_results})"
    return output


def search(root: Path, pattern: str, options: Optional[SearchOptions] = None) -> str:
    options = options or SearchOptions()
    flags = 0 if options.case_sensitive else re.IGNORECASE
    try:
        regex = re.compile(pattern, flags)
    except re.error as exc:
        raise ToolExecutionError(f"Invalid regex pattern: {exc}") from exc

    if not root.exists():
        raise ToolExecutionError(f"{root} does not exist")

    results: List[SearchResult] = []
    total = 0
    context = options.context_lines
    for path in iter_files(root, options.include_extensions):
        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.debug("search_skip_binary", path=str(path))
            continue
        except OSError as exc:
            raise ToolExecutionError(f"Failed to read file: {path}: {exc}") from exc

        lines = content.splitlines()
        for idx, line in enumerate(lines):
            if not regex.search(line):
                continue
            total += 1
            if len(results) >= options.max_results:
                continue
            results.append(SearchResult(
                file_path=str(path),
                line_number=idx + 1,
                line_content=line,
                context_before=lines[max(0, idx - context):idx] if context > 0 else [],
                context_after=lines[idx + 1:idx + 1 + context] if context > 0 else [],
            ))

    if not results:
        return f'No matches found for pattern "{pattern}" in {root}'
    return _format_results(results, regex, pattern, options, total)
