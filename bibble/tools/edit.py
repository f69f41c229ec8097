"""In-place text file edits.

Public Interface:
    - edit_tools(): The edit tools bound to a sandbox
    - find_replace_in_file, insert_text, delete_lines: The handlers

Each handler can copy the file to ``<name>.backup.<milliseconds>`` before
changing it. Lines are counted from 1 and split on ``\\n`` only, so a
trailing newline leaves an empty last line.
"""

import asyncio
import logging
import re
import shutil
import time
from functools import partial
from pathlib import Path
from typing import Any, Dict, List, Optional

from bibble.core.errors import ToolExecutionError
from bibble.core.registry import BuiltInTool
from bibble.tools.filesystem import load_text_file
from bibble.tools.sandbox import ToolSandbox
from bibble.tools.search import compile_query
from bibble.types.models import ToolDefinition, ToolParameter, ToolResult

logger = logging.getLogger(__name__)

CATEGORY = "edit"


def _as_int(params: Dict[str, Any], name: str, default: Optional[int] = None) -> Optional[int]:
    value = params.get(name, default)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ToolExecutionError(f"Invalid {name}: {value}")


async def _backup(path: Path) -> str:
    backup = path.with_name(f"{path.name}.backup.{int(time.time() * 1000)}")
    await asyncio.to_thread(shutil.copy2, path, backup)
    return str(backup)


async def _write(sandbox: ToolSandbox, path: Path, content: str) -> None:
    encoded = content.encode("utf-8")
    if len(encoded) > sandbox.max_file_size:
        raise ToolExecutionError(
            f"Content too large: {len(encoded)} bytes (limit {sandbox.max_file_size} bytes)"
        )
    await asyncio.to_thread(path.write_bytes, encoded)


async def find_replace_in_file(sandbox: ToolSandbox, params: Dict[str, Any]) -> ToolResult:
    """Replace matches of a pattern in one file.

    In regex mode the replacement may refer to groups as ``\\1``; otherwise
    it is inserted literally.

    Args:
        params: Dictionary containing:
            - path: File to edit
            - search: Text or regular expression to find
            - replace: Replacement text
            - case_sensitive: Match case (default False)
            - whole_word: Only match whole words (default False)
            - regex: Treat search as a regular expression (default False)
            - max_replacements: Stop after this many replacements (default all)
            - create_backup: Copy the file before changing it (default True)
    """
    if not params["search"]:
        raise ToolExecutionError("Search pattern cannot be empty")

    pattern = compile_query(
        params["search"],
        bool(params.get("regex")),
        bool(params.get("case_sensitive")),
        bool(params.get("whole_word")),
    )
    limit = _as_int(params, "max_replacements")
    if limit is not None and limit <= 0:
        raise ToolExecutionError("max_replacements must be positive")

    path, content = await load_text_file(sandbox, params["path"])
    replacement = str(params["replace"])
    total_matches = sum(1 for _ in pattern.finditer(content))
    if params.get("regex"):
        try:
            new_content, replaced = pattern.subn(replacement, content, count=limit or 0)
        except re.error as e:
            raise ToolExecutionError(f"Invalid replacement: {e}")
    else:
        new_content, replaced = pattern.subn(lambda _: replacement, content, count=limit or 0)

    backup_path = None
    if replaced:
        if params.get("create_backup", True):
            backup_path = await _backup(path)
        await _write(sandbox, path, new_content)
        logger.debug("Replaced text in file", extra={"path": str(path), "replacements": replaced})

    return ToolResult.ok(
        data={
            "path": str(path),
            "replacements": replaced,
            "total_matches": total_matches,
            "modified": replaced > 0,
            "backup_path": backup_path,
        },
        message=f"Made {replaced} replacement(s) in {path}",
    )


async def insert_text(sandbox: ToolSandbox, params: Dict[str, Any]) -> ToolResult:
    """Insert text at a line and column.

    A line one past the last appends the text on a new line. A column past
    the end of the line pads the line with spaces.

    Args:
        params: Dictionary containing:
            - path: File to edit
            - text: Text to insert, may span lines
            - line: Line number, from 1
            - column: Column, from 0 (default 0)
            - create_backup: Copy the file before changing it (default True)
    """
    line = _as_int(params, "line")
    column = _as_int(params, "column", 0)
    if column < 0:
        raise ToolExecutionError("Column must not be negative")
    text = str(params["text"])

    path, content = await load_text_file(sandbox, params["path"])
    lines = content.split("\n")
    if line < 1 or line > len(lines) + 1:
        raise ToolExecutionError(f"Invalid line number: {line}. File has {len(lines)} lines.")

    if line > len(lines):
        new_content = content + ("" if content.endswith("\n") else "\n") + text
    else:
        target = lines[line - 1]
        if column > len(target):
            target += " " * (column - len(target))
        lines[line - 1] = target[:column] + text + target[column:]
        new_content = "\n".join(lines)

    backup_path = await _backup(path) if params.get("create_backup", True) else None
    await _write(sandbox, path, new_content)
    return ToolResult.ok(
        data={
            "path": str(path),
            "line": line,
            "column": column,
            "bytes_added": len(new_content.encode("utf-8")) - len(content.encode("utf-8")),
            "backup_path": backup_path,
        },
        message=f"Inserted text at line {line}, column {column} of {path}",
    )


async def delete_lines(sandbox: ToolSandbox, params: Dict[str, Any]) -> ToolResult:
    """Delete a line or an inclusive range of lines.

    Args:
        params: Dictionary containing:
            - path: File to edit
            - start_line: First line to delete, from 1
            - end_line: Last line to delete (default start_line)
            - create_backup: Copy the file before changing it (default True)
    """
    start = _as_int(params, "start_line")
    path, content = await load_text_file(sandbox, params["path"])
    lines = content.split("\n")
    if start < 1 or start > len(lines):
        raise ToolExecutionError(f"Invalid start line: {start}. File has {len(lines)} lines.")
    end = _as_int(params, "end_line") or start
    if end < start or end > len(lines):
        raise ToolExecutionError(f"Invalid end line: {end}. Must be >= {start} and <= {len(lines)}.")

    deleted: List[str] = lines[start - 1:end]
    remaining = lines[:start - 1] + lines[end:]

    backup_path = await _backup(path) if params.get("create_backup", True) else None
    await _write(sandbox, path, "\n".join(remaining))
    return ToolResult.ok(
        data={
            "path": str(path),
            "start_line": start,
            "end_line": end,
            "deleted": deleted,
            "remaining_lines": len(remaining),
            "backup_path": backup_path,
        },
        message=f"Deleted {len(deleted)} line(s) from {path}",
    )


def edit_tools(sandbox: ToolSandbox) -> List[BuiltInTool]:
    """Build the edit tools bound to a sandbox."""
    path_param = ToolParameter(type="string", description="Path to the file", required=True)
    backup_param = ToolParameter(
        type="boolean", description="Copy the file before changing it", default=True
    )
    return [
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "find_replace_in_file",
                "Find and replace text in a file",
                {
                    "path": path_param,
                    "search": ToolParameter(
                        type="string", description="Text or regular expression to find", required=True
                    ),
                    "replace": ToolParameter(
                        type="string", description="Replacement text", required=True
                    ),
                    "case_sensitive": ToolParameter(
                        type="boolean", description="Match case", default=False
                    ),
                    "whole_word": ToolParameter(
                        type="boolean", description="Only match whole words", default=False
                    ),
                    "regex": ToolParameter(
                        type="boolean", description="Treat search as a regular expression", default=False
                    ),
                    "max_replacements": ToolParameter(
                        type="integer", description="Most replacements to make"
                    ),
                    "create_backup": backup_param,
                },
            ),
            handler=partial(find_replace_in_file, sandbox),
            category=CATEGORY,
        ),
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "insert_text",
                "Insert text at a line and column of a file",
                {
                    "path": path_param,
                    "text": ToolParameter(
                        type="string", description="Text to insert", required=True
                    ),
                    "line": ToolParameter(
                        type="integer", description="Line number, starting at 1", required=True
                    ),
                    "column": ToolParameter(
                        type="integer", description="Column, starting at 0", default=0
                    ),
                    "create_backup": backup_param,
                },
            ),
            handler=partial(insert_text, sandbox),
            category=CATEGORY,
        ),
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "delete_lines",
                "Delete a line or a range of lines from a file",
                {
                    "path": path_param,
                    "start_line": ToolParameter(
                        type="integer", description="First line to delete, starting at 1", required=True
                    ),
                    "end_line": ToolParameter(
                        type="integer", description="Last line to delete; defaults to start_line"
                    ),
                    "create_backup": backup_param,
                },
            ),
            handler=partial(delete_lines, sandbox),
            category=CATEGORY,
        ),
    ]
