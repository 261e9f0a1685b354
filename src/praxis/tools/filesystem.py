"""Read-only filesystem tools: directory listing, file reading, name/text search and file info."""

import logging
import os
import re
from pathlib import Path
from typing import (
    Any,
    Dict,
    Iterator,
    List,
    Mapping,
)

from praxis.tools import (
    Tool,
    register_tool,
)

logger = logging.getLogger(__name__)

SKIPPED_DIRECTORIES = frozenset({".git", "node_modules"})
MAX_LINE_PREVIEW = 200
DEFAULT_SEARCH_LIMIT = 100


def _walk_files(root: Path, sandbox: Path) -> Iterator[Path]:
    """
    Yield files under *root* in a stable order, skipping VCS and dependency folders.

    Entries whose resolved target lies outside *sandbox* (symlinks pointing out of the working
    directory) are skipped.
    """
    for dirpath, dirnames, filenames in os.walk(root, onerror=lambda exc: None):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIPPED_DIRECTORIES)
        for filename in sorted(filenames):
            path = Path(dirpath) / filename
            try:
                inside = path.resolve().is_relative_to(sandbox)
            except (OSError, RuntimeError):
                inside = False
            if not inside:
                logger.debug("Skipping %s: resolves outside the working directory", path)
                continue
            yield path


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024**2:
        return f"{size / 1024:.2f} KB"
    if size < 1024**3:
        return f"{size / 1024**2:.2f} MB"
    return f"{size / 1024**3:.2f} GB"


def _search_limit(args: Mapping[str, Any]) -> int:
    try:
        return max(1, int(args.get("limit") or DEFAULT_SEARCH_LIMIT))
    except (TypeError, ValueError):
        return DEFAULT_SEARCH_LIMIT


@register_tool
class ListDirectoryTool(Tool):
    """List the entries of one directory."""

    name = "list_directory"
    display_name = "List directory"
    description = (
        "List the files and folders inside a directory. "
        "`path` must be a directory relative to the working directory."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Directory to list, relative to the working directory (required)",
            }
        },
        "required": ["path"],
    }

    def execute(self, args: Mapping[str, Any]) -> Dict[str, Any]:
        self.require(args, "path")
        target = self.resolve_path(args["path"])
        if not target.is_dir():
            return {"success": False, "error": f"Not a directory: {args['path']}"}
        try:
            entries = sorted(target.iterdir(), key=lambda p: p.name)
        except OSError as exc:
            return {"success": False, "error": str(exc)}
        return {
            "success": True,
            "path": self.relative(target),
            "items": [
                {
                    "name": entry.name,
                    "type": "directory" if entry.is_dir() else "file",
                    "path": self.relative(target / entry.name),
                }
                for entry in entries
            ],
        }


@register_tool
class ReadFileTool(Tool):
    """Read a window of lines from a text file."""

    name = "read_file"
    display_name = "Read file"
    description = "Read the contents of a file, optionally a window of lines."
    input_schema = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "File to read, relative to the working directory",
            },
            "offset": {
                "type": "number",
                "description": "First line to read (1-based, optional, default 1)",
            },
            "limit": {
                "type": "number",
                "description": "Number of lines to read (optional, default all)",
            },
        },
        "required": ["path"],
    }

    def execute(self, args: Mapping[str, Any]) -> Dict[str, Any]:
        self.require(args, "path")
        target = self.resolve_path(args["path"])
        try:
            offset = int(args.get("offset") or 1)
            limit = int(args["limit"]) if args.get("limit") else None
        except (TypeError, ValueError) as exc:
            return {"success": False, "error": f"Invalid offset/limit: {exc}"}

        try:
            text = target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            return {"success": False, "error": str(exc)}

        lines = text.split("\n")
        start = max(0, offset - 1)
        end = min(len(lines), start + limit) if limit else len(lines)
        selected = lines[start:end]
        content = "\n".join(selected)

        omitted: List[str] = []
        if start > 0:
            omitted.append(f"first {start} line(s) omitted")
        if end < len(lines):
            omitted.append(f"last {len(lines) - end} line(s) omitted")
        if omitted:
            content = f"{content}{chr(10) if content else ''}\n[... {', '.join(omitted)} ...]"

        return {
            "success": True,
            "path": self.relative(target),
            "content": content,
            "totalLines": len(lines),
            "startLine": offset,
            "endLine": end,
            "linesRead": len(selected),
        }


@register_tool
class SearchFileTool(Tool):
    """Find files whose name matches a regular expression."""

    name = "search_file"
    display_name = "Search files"
    description = "Search a directory tree for file names matching a regular expression."
    input_schema = {
        "type": "object",
        "properties": {
            "pattern": {
                "type": "string",
                "description": "Regular expression matched against file names",
            },
            "root_path": {
                "type": "string",
                "description": "Directory to search, relative to the working directory",
            },
            "limit": {"type": "number", "description": "Maximum number of results (default 100)"},
        },
        "required": ["pattern", "root_path"],
    }

    def execute(self, args: Mapping[str, Any]) -> Dict[str, Any]:
        self.require(args, "pattern", "root_path")
        root = self.resolve_path(args["root_path"])
        limit = _search_limit(args)
        if not root.is_dir():
            return {"success": False, "error": f"root_path must be a directory: {args['root_path']}"}
        try:
            regex = re.compile(args["pattern"])
        except re.error as exc:
            return {"success": False, "error": f"Invalid pattern: {exc}"}

        matches: List[str] = []
        for path in _walk_files(root, self.work_directory):
            if regex.search(path.name):
                matches.append(self.relative(path))
                if len(matches) >= limit:
                    break

        return {
            "success": True,
            "count": len(matches),
            "results": "\n".join(f"{i} - {path}" for i, path in enumerate(matches, start=1)),
        }


@register_tool
class SearchTextTool(Tool):
    """Grep-like line search across a directory tree."""

    name = "search_text"
    display_name = "Search text"
    description = (
        "Search file contents under a directory for a regular expression and return the "
        "matching locations with the line text."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "pattern": {
                "type": "string",
                "description": "Regular expression matched against each line",
            },
            "root_path": {
                "type": "string",
                "description": "Directory to search, relative to the working directory",
            },
            "limit": {"type": "number", "description": "Maximum number of results (default 100)"},
        },
        "required": ["pattern", "root_path"],
    }

    def execute(self, args: Mapping[str, Any]) -> Dict[str, Any]:
        self.require(args, "pattern", "root_path")
        root = self.resolve_path(args["root_path"])
        limit = _search_limit(args)
        if not root.is_dir():
            return {"success": False, "error": f"root_path must be a directory: {args['root_path']}"}
        try:
            regex = re.compile(args["pattern"])
        except re.error as exc:
            return {"success": False, "error": f"Invalid pattern: {exc}"}

        hits: List[str] = []
        for path in _walk_files(root, self.work_directory):
            if len(hits) >= limit:
                break
            try:
                lines = path.read_text(encoding="utf-8").split("\n")
            except (OSError, UnicodeDecodeError):
                continue  # binary or unreadable
            for lineno, line in enumerate(lines, start=1):
                if regex.search(line):
                    preview = line[:MAX_LINE_PREVIEW]
                    hits.append(f"{len(hits) + 1} - {self.relative(path)}[{lineno}]: {preview}")
                    if len(hits) >= limit:
                        break

        return {"success": True, "count": len(hits), "results": "\n".join(hits)}


@register_tool
class FileInfoTool(Tool):
    """Line count and size of one file."""

    name = "file_info"
    display_name = "File info"
    description = (
        "Return the line count and size of a file. Reports that the file does not exist if "
        "it is missing."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "File to inspect, relative to the working directory",
            }
        },
        "required": ["path"],
    }

    def execute(self, args: Mapping[str, Any]) -> Dict[str, Any]:
        self.require(args, "path")
        target = self.resolve_path(args["path"])
        if not target.exists():
            return {
                "success": False,
                "error": "File does not exist",
                "path": self.relative(target),
            }
        if not target.is_file():
            return {"success": False, "error": "Path is not a file"}
        try:
            size = target.stat().st_size
            line_count = len(target.read_text(encoding="utf-8", errors="replace").split("\n"))
        except OSError as exc:
            return {"success": False, "error": str(exc)}
        return {
            "success": True,
            "path": self.relative(target),
            "lineCount": line_count,
            "fileSize": size,
            "fileSizeFormatted": _format_size(size),
        }
