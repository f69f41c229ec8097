"""Content search in files."""

import asyncio
import re
from functools import partial
from typing import Any, Dict, List

from bibble.core.errors import ToolExecutionError
from bibble.core.registry import BuiltInTool
from bibble.tools.filesystem import is_binary, load_text_file
from bibble.tools.sandbox import ToolSandbox
from bibble.types.models import ToolDefinition, ToolParameter, ToolResult

# Longest line kept in a match, in characters
MAX_LINE_LENGTH = 300


def compile_query(
    query: str,
    use_regex: bool = False,
    case_sensitive: bool = False,
    whole_word: bool = False
) -> "re.Pattern[str]":
    """Compile a search query, escaping it unless it is a regular expression."""
    flags = 0 if case_sensitive else re.IGNORECASE
    source = query if use_regex else re.escape(query)
    if whole_word and not use_regex:
        source = rf"\b{source}\b"
    try:
        return re.compile(source, flags)
    except re.error as e:
        raise ToolExecutionError(f"Invalid regular expression: {e}")


async def search_in_files(sandbox: ToolSandbox, params: Dict[str, Any]) -> ToolResult:
    """Search file contents line by line.

    Args:
        params: Dictionary containing:
            - query: Text or regular expression to look for
            - directory: Where to search (default ".")
            - file_pattern: Glob for file names to include (default "*")
            - case_sensitive: Match case (default False)
            - regex: Treat the query as a regular expression (default False)
    """
    if not params["query"]:
        raise ToolExecutionError("Query cannot be empty")

    root = sandbox.check_path(params.get("directory") or ".")
    if not root.is_dir():
        raise ToolExecutionError(f"Not a directory: {root}")

    pattern = compile_query(params["query"], bool(params.get("regex")), bool(params.get("case_sensitive")))
    file_pattern = params.get("file_pattern") or "*"
    limit = sandbox.max_search_results

    def _search() -> Dict[str, Any]:
        matches: List[Dict[str, Any]] = []
        files_searched = 0
        for path in sorted(root.rglob(file_pattern)):
            relative = path.relative_to(root)
            if any(part.startswith(".") for part in relative.parts):
                continue
            if not path.is_file() or sandbox.is_blocked_path(path):
                continue
            try:
                if path.stat().st_size > sandbox.max_file_size:
                    continue
                raw = path.read_bytes()
            except OSError:
                continue
            if is_binary(raw):
                continue

            files_searched += 1
            text = raw.decode("utf-8", errors="replace")
            for line_number, line in enumerate(text.splitlines(), start=1):
                if pattern.search(line):
                    matches.append({
                        "file": relative.as_posix(),
                        "line": line_number,
                        "text": line.strip()[:MAX_LINE_LENGTH],
                    })
                    if len(matches) >= limit:
                        return {"matches": matches, "files_searched": files_searched, "truncated": True}
        return {"matches": matches, "files_searched": files_searched, "truncated": False}

    result = await asyncio.to_thread(_search)
    result.update({"directory": str(root), "query": params["query"], "total": len(result["matches"])})
    return ToolResult.ok(data=result)


async def search_in_file(sandbox: ToolSandbox, params: Dict[str, Any]) -> ToolResult:
    """Search one file, reporting every match with its position.

    Args:
        params: Dictionary containing:
            - path: File to search
            - query: Text or regular expression to look for
            - case_sensitive: Match case (default False)
            - whole_word: Only match whole words (default False)
            - regex: Treat the query as a regular expression (default False)
            - context_lines: Lines of context around each match (default 0)
            - max_results: Most matches to return, capped by the configured limit
    """
    if not params["query"]:
        raise ToolExecutionError("Query cannot be empty")

    pattern = compile_query(
        params["query"],
        bool(params.get("regex")),
        bool(params.get("case_sensitive")),
        bool(params.get("whole_word")),
    )
    context = max(0, int(params.get("context_lines") or 0))
    limit = min(int(params.get("max_results") or sandbox.max_search_results), sandbox.max_search_results)
    path, content = await load_text_file(sandbox, params["path"])

    lines = content.split("\n")
    matches: List[Dict[str, Any]] = []
    truncated = False
    for index, line in enumerate(lines):
        for match in pattern.finditer(line):
            if len(matches) >= limit:
                truncated = True
                break
            entry: Dict[str, Any] = {
                "line": index + 1,
                "column": match.start() + 1,
                "text": match.group(0),
            }
            if context:
                entry["before"] = lines[max(0, index - context):index]
                entry["after"] = lines[index + 1:index + 1 + context]
            matches.append(entry)
        if truncated:
            break

    return ToolResult.ok(data={
        "path": str(path),
        "query": params["query"],
        "matches": matches,
        "total": len(matches),
        "total_lines": len(lines),
        "truncated": truncated,
    })


def search_tools(sandbox: ToolSandbox) -> List[BuiltInTool]:
    """Build the search tools bound to a sandbox."""
    return [
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "search_in_files",
                "Search for text in files under a directory",
                {
                    "query": ToolParameter(
                        type="string", description="Text or regular expression to find", required=True
                    ),
                    "directory": ToolParameter(
                        type="string", description="Directory to search", default="."
                    ),
                    "file_pattern": ToolParameter(
                        type="string", description="Glob for file names, e.g. '*.py'", default="*"
                    ),
                    "case_sensitive": ToolParameter(
                        type="boolean", description="Match case", default=False
                    ),
                    "regex": ToolParameter(
                        type="boolean", description="Treat the query as a regular expression", default=False
                    ),
                },
            ),
            handler=partial(search_in_files, sandbox),
            category="search",
        ),
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "search_in_file",
                "Search one file for text and report line and column of each match",
                {
                    "path": ToolParameter(
                        type="string", description="File to search", required=True
                    ),
                    "query": ToolParameter(
                        type="string", description="Text or regular expression to find", required=True
                    ),
                    "case_sensitive": ToolParameter(
                        type="boolean", description="Match case", default=False
                    ),
                    "whole_word": ToolParameter(
                        type="boolean", description="Only match whole words", default=False
                    ),
                    "regex": ToolParameter(
                        type="boolean", description="Treat the query as a regular expression", default=False
                    ),
                    "context_lines": ToolParameter(
                        type="integer", description="Lines of context around each match", default=0
                    ),
                    "max_results": ToolParameter(
                        type="integer", description="Most matches to return", default=100
                    ),
                },
            ),
            handler=partial(search_in_file, sandbox),
            category="search",
        ),
    ]
