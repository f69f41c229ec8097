"""Filesystem tools.

Public Interface:
    - filesystem_tools(): The filesystem tools bound to a sandbox
    - read_file, write_file, list_directory, get_file_info,
      create_directory, find_files, copy_file, move_file, delete_file:
      The handlers
    - load_text_file(): Checked read of a text file, shared with the
      edit and search tools

Blocking filesystem work runs in a worker thread so the event loop keeps
streaming while a large directory is walked.
"""

import asyncio
import fnmatch
import logging
import shutil
import stat
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any, Dict, List, Tuple

from bibble.core.errors import ToolExecutionError
from bibble.core.registry import BuiltInTool
from bibble.tools.sandbox import ToolSandbox
from bibble.types.models import ToolDefinition, ToolParameter, ToolResult

logger = logging.getLogger(__name__)

CATEGORY = "filesystem"

# Bytes inspected when deciding whether a file is binary
BINARY_SNIFF_BYTES = 8192


def is_binary(data: bytes) -> bool:
    return b"\0" in data[:BINARY_SNIFF_BYTES]


async def load_text_file(sandbox: ToolSandbox, raw_path: Any) -> Tuple[Path, str]:
    """Check, size-limit and read a UTF-8 text file.

    Returns:
        The resolved path and the file contents

    Raises:
        ToolExecutionError: If the path is refused, missing, too large or
            not a text file
    """
    path = sandbox.check_path(raw_path)
    if not path.exists():
        raise ToolExecutionError(f"File not found: {path}")
    if not path.is_file():
        raise ToolExecutionError(f"Path is not a file: {path}")
    sandbox.check_file_size(path)

    raw = await asyncio.to_thread(path.read_bytes)
    if is_binary(raw):
        raise ToolExecutionError(f"Not a text file: {path}")
    try:
        return path, raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ToolExecutionError(f"Cannot decode {path}: {e}")


def _is_hidden(path: Path) -> bool:
    return path.name.startswith(".")


def _timestamp(value: float) -> str:
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


async def read_file(sandbox: ToolSandbox, params: Dict[str, Any]) -> ToolResult:
    """Read a text file.

    Args:
        params: Dictionary containing:
            - path: File to read
            - encoding: Text encoding (default utf-8)
    """
    path = sandbox.check_path(params["path"])
    if not path.is_file():
        raise ToolExecutionError(f"File not found: {path}")
    sandbox.check_file_size(path)

    raw = await asyncio.to_thread(path.read_bytes)
    if is_binary(raw):
        return ToolResult.ok(
            data={"path": str(path), "size": len(raw), "is_binary": True},
            message=f"Binary file detected: {path.name} ({len(raw)} bytes)",
        )

    try:
        return ToolResult.ok(data=raw.decode(params.get("encoding") or "utf-8"))
    except (LookupError, UnicodeDecodeError) as e:
        raise ToolExecutionError(f"Cannot decode {path}: {e}")


async def write_file(sandbox: ToolSandbox, params: Dict[str, Any]) -> ToolResult:
    """Write or append text to a file.

    Args:
        params: Dictionary containing:
            - path: File to write
            - content: Text to write
            - append: Append instead of overwrite (default False)
            - create_dirs: Create missing parent directories (default True)
    """
    path = sandbox.check_path(params["path"])
    content = str(params["content"])
    encoded = content.encode("utf-8")
    if len(encoded) > sandbox.max_file_size:
        raise ToolExecutionError(
            f"Content too large: {len(encoded)} bytes (limit {sandbox.max_file_size} bytes)"
        )
    if path.is_dir():
        raise ToolExecutionError(f"Path is a directory: {path}")

    def _write() -> None:
        if params.get("create_dirs", True):
            path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a" if params.get("append") else "w", encoding="utf-8") as f:
            f.write(content)

    await asyncio.to_thread(_write)
    action = "Appended" if params.get("append") else "Wrote"
    return ToolResult.ok(
        data={"path": str(path), "bytes": len(encoded)},
        message=f"{action} {len(encoded)} bytes to {path}",
    )


def _entry(path: Path, root: Path) -> Dict[str, Any]:
    is_dir = path.is_dir()
    return {
        "name": path.relative_to(root).as_posix(),
        "type": "directory" if is_dir else "file",
        "size": 0 if is_dir else path.stat().st_size,
    }


async def list_directory(sandbox: ToolSandbox, params: Dict[str, Any]) -> ToolResult:
    """List a directory.

    Args:
        params: Dictionary containing:
            - path: Directory to list (default ".")
            - recursive: Descend into subdirectories (default False)
            - include_hidden: Include dot files (default False)
    """
    root = sandbox.check_path(params.get("path") or ".")
    if not root.is_dir():
        raise ToolExecutionError(f"Not a directory: {root}")

    recursive = bool(params.get("recursive"))
    include_hidden = bool(params.get("include_hidden"))
    limit = sandbox.max_search_results

    def _walk() -> List[Dict[str, Any]]:
        candidates = root.rglob("*") if recursive else root.iterdir()
        entries: List[Dict[str, Any]] = []
        for path in sorted(candidates):
            relative = path.relative_to(root)
            if not include_hidden and any(part.startswith(".") for part in relative.parts):
                continue
            if sandbox.is_blocked_path(path):
                continue
            try:
                entries.append(_entry(path, root))
            except OSError:
                continue
            if len(entries) >= limit:
                break
        return entries

    entries = await asyncio.to_thread(_walk)
    directories = sum(1 for entry in entries if entry["type"] == "directory")
    return ToolResult.ok(data={
        "directory": str(root),
        "entries": entries,
        "summary": {
            "total_files": len(entries) - directories,
            "total_directories": directories,
        },
    })


async def get_file_info(sandbox: ToolSandbox, params: Dict[str, Any]) -> ToolResult:
    """Describe a file or directory.

    Args:
        params: Dictionary containing:
            - path: File or directory
    """
    path = sandbox.check_path(params["path"])
    if not path.exists():
        raise ToolExecutionError(f"Path not found: {path}")

    info = path.stat()
    return ToolResult.ok(data={
        "path": str(path),
        "type": "directory" if path.is_dir() else "file",
        "size": info.st_size,
        "modified": _timestamp(info.st_mtime),
        "created": _timestamp(info.st_ctime),
        "permissions": stat.filemode(info.st_mode),
        "is_symlink": Path(params["path"]).expanduser().is_symlink(),
        "is_hidden": _is_hidden(path),
    })


async def create_directory(sandbox: ToolSandbox, params: Dict[str, Any]) -> ToolResult:
    """Create a directory.

    Args:
        params: Dictionary containing:
            - path: Directory to create
            - parents: Create missing parents (default True)
    """
    path = sandbox.check_path(params["path"])
    if path.exists() and not path.is_dir():
        raise ToolExecutionError(f"A file already exists at {path}")
    if path.is_dir():
        return ToolResult.ok(data={"path": str(path)}, message=f"Directory already exists: {path}")

    try:
        await asyncio.to_thread(path.mkdir, parents=bool(params.get("parents", True)))
    except FileNotFoundError:
        raise ToolExecutionError(f"Parent directory does not exist: {path.parent}")
    return ToolResult.ok(data={"path": str(path)}, message=f"Created directory: {path}")


async def find_files(sandbox: ToolSandbox, params: Dict[str, Any]) -> ToolResult:
    """Find files whose names match a glob pattern.

    Args:
        params: Dictionary containing:
            - pattern: Glob pattern such as "*.py"
            - directory: Where to search (default ".")
            - include_hidden: Include dot files (default False)
    """
    root = sandbox.check_path(params.get("directory") or ".")
    if not root.is_dir():
        raise ToolExecutionError(f"Not a directory: {root}")

    pattern = params["pattern"]
    include_hidden = bool(params.get("include_hidden"))
    limit = sandbox.max_search_results

    def _find() -> List[str]:
        matches: List[str] = []
        for path in sorted(root.rglob("*")):
            relative = path.relative_to(root)
            if not include_hidden and any(part.startswith(".") for part in relative.parts):
                continue
            if not fnmatch.fnmatch(path.name, pattern) and not fnmatch.fnmatch(relative.as_posix(), pattern):
                continue
            if sandbox.is_blocked_path(path):
                continue
            matches.append(relative.as_posix())
            if len(matches) >= limit:
                break
        return matches

    matches = await asyncio.to_thread(_find)
    return ToolResult.ok(data={
        "directory": str(root),
        "pattern": pattern,
        "matches": matches,
        "total": len(matches),
        "truncated": len(matches) >= limit,
    })


def _refuse_root(sandbox: ToolSandbox, path: Path, action: str) -> None:
    if path in sandbox.allowed_roots:
        raise ToolExecutionError(f"Cannot {action} an allowed root directory: {path}")


async def copy_file(sandbox: ToolSandbox, params: Dict[str, Any]) -> ToolResult:
    """Copy a file or directory.

    An existing directory as destination receives the copy inside it.

    Args:
        params: Dictionary containing:
            - source: File or directory to copy
            - destination: Target path
            - overwrite: Replace an existing target (default False)
            - preserve_timestamps: Keep modification times (default True)
    """
    source = sandbox.check_path(params["source"])
    if not source.exists():
        raise ToolExecutionError(f"Source not found: {source}")
    destination = sandbox.check_path(params["destination"])
    if destination.is_dir() and not source.is_dir():
        destination = sandbox.check_path(destination / source.name)
    if destination == source or source in destination.parents:
        raise ToolExecutionError(f"Cannot copy {source} into itself")
    overwrite = bool(params.get("overwrite"))
    if destination.exists() and not overwrite:
        raise ToolExecutionError(f"Destination already exists: {destination}")

    copy_function = shutil.copy2 if params.get("preserve_timestamps", True) else shutil.copy

    def _copy() -> None:
        if source.is_dir():
            shutil.copytree(source, destination, copy_function=copy_function, dirs_exist_ok=overwrite)
        else:
            destination.parent.mkdir(parents=True, exist_ok=True)
            copy_function(source, destination)

    await asyncio.to_thread(_copy)
    return ToolResult.ok(
        data={"source": str(source), "destination": str(destination)},
        message=f"Copied {source} to {destination}",
    )


async def move_file(sandbox: ToolSandbox, params: Dict[str, Any]) -> ToolResult:
    """Move or rename a file or directory.

    Args:
        params: Dictionary containing:
            - source: File or directory to move
            - destination: New path
            - overwrite: Replace an existing file at the destination (default False)
    """
    source = sandbox.check_path(params["source"])
    if not source.exists():
        raise ToolExecutionError(f"Source not found: {source}")
    _refuse_root(sandbox, source, "move")
    destination = sandbox.check_path(params["destination"])
    if source in destination.parents:
        raise ToolExecutionError(f"Cannot move {source} into itself")
    if destination.exists():
        if not params.get("overwrite"):
            raise ToolExecutionError(f"Destination already exists: {destination}")
        if destination.is_dir():
            raise ToolExecutionError(f"Destination is a directory: {destination}")

    def _move() -> None:
        destination.parent.mkdir(parents=True, exist_ok=True)
        if destination.exists():
            destination.unlink()
        shutil.move(str(source), str(destination))

    await asyncio.to_thread(_move)
    return ToolResult.ok(
        data={"source": str(source), "destination": str(destination)},
        message=f"Moved {source} to {destination}",
    )


async def delete_file(sandbox: ToolSandbox, params: Dict[str, Any]) -> ToolResult:
    """Delete a file or directory.

    A missing path is reported, not raised.

    Args:
        params: Dictionary containing:
            - path: File or directory to delete
            - recursive: Delete a directory with its contents (default False)
    """
    path = sandbox.check_path(params["path"])
    if not path.exists():
        return ToolResult.ok(data={"path": str(path), "deleted": False}, message=f"Path does not exist: {path}")
    _refuse_root(sandbox, path, "delete")

    is_dir = path.is_dir()
    if is_dir and params.get("recursive"):
        await asyncio.to_thread(shutil.rmtree, path)
    elif is_dir:
        try:
            await asyncio.to_thread(path.rmdir)
        except OSError:
            raise ToolExecutionError(
                f"Directory not empty, use recursive to delete its contents: {path}"
            )
    else:
        await asyncio.to_thread(path.unlink)

    logger.info("Deleted path", extra={"path": str(path), "is_directory": is_dir})
    return ToolResult.ok(
        data={"path": str(path), "deleted": True, "was_directory": is_dir},
        message=f"Deleted {'directory' if is_dir else 'file'}: {path}",
    )


def filesystem_tools(sandbox: ToolSandbox) -> List[BuiltInTool]:
    """Build the filesystem tools bound to a sandbox."""
    path_param = ToolParameter(type="string", description="Path to the file", required=True)
    return [
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "read_file",
                "Read the contents of a text file",
                {
                    "path": path_param,
                    "encoding": ToolParameter(
                        type="string", description="Text encoding", default="utf-8"
                    ),
                },
            ),
            handler=partial(read_file, sandbox),
            category=CATEGORY,
        ),
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "write_file",
                "Write text to a file, creating it if needed",
                {
                    "path": path_param,
                    "content": ToolParameter(
                        type="string", description="Text to write", required=True
                    ),
                    "append": ToolParameter(
                        type="boolean", description="Append instead of overwrite", default=False
                    ),
                    "create_dirs": ToolParameter(
                        type="boolean", description="Create missing parent directories", default=True
                    ),
                },
            ),
            handler=partial(write_file, sandbox),
            category=CATEGORY,
        ),
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "list_directory",
                "List the contents of a directory",
                {
                    "path": ToolParameter(
                        type="string", description="Directory to list", default="."
                    ),
                    "recursive": ToolParameter(
                        type="boolean", description="Include subdirectories", default=False
                    ),
                    "include_hidden": ToolParameter(
                        type="boolean", description="Include hidden files", default=False
                    ),
                },
            ),
            handler=partial(list_directory, sandbox),
            category=CATEGORY,
        ),
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "get_file_info",
                "Get size, type, timestamps and permissions of a file or directory",
                {"path": ToolParameter(type="string", description="Path to inspect", required=True)},
            ),
            handler=partial(get_file_info, sandbox),
            category=CATEGORY,
        ),
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "create_directory",
                "Create a directory",
                {
                    "path": ToolParameter(
                        type="string", description="Directory to create", required=True
                    ),
                    "parents": ToolParameter(
                        type="boolean", description="Create missing parent directories", default=True
                    ),
                },
            ),
            handler=partial(create_directory, sandbox),
            category=CATEGORY,
        ),
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "find_files",
                "Find files by name using a glob pattern",
                {
                    "pattern": ToolParameter(
                        type="string", description="Glob pattern, e.g. '*.py'", required=True
                    ),
                    "directory": ToolParameter(
                        type="string", description="Directory to search", default="."
                    ),
                    "include_hidden": ToolParameter(
                        type="boolean", description="Include hidden files", default=False
                    ),
                },
            ),
            handler=partial(find_files, sandbox),
            category=CATEGORY,
        ),
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "copy_file",
                "Copy a file or directory",
                {
                    "source": ToolParameter(
                        type="string", description="File or directory to copy", required=True
                    ),
                    "destination": ToolParameter(
                        type="string", description="Target path", required=True
                    ),
                    "overwrite": ToolParameter(
                        type="boolean", description="Replace an existing target", default=False
                    ),
                    "preserve_timestamps": ToolParameter(
                        type="boolean", description="Keep modification times", default=True
                    ),
                },
            ),
            handler=partial(copy_file, sandbox),
            category=CATEGORY,
        ),
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "move_file",
                "Move or rename a file or directory",
                {
                    "source": ToolParameter(
                        type="string", description="File or directory to move", required=True
                    ),
                    "destination": ToolParameter(
                        type="string", description="New path", required=True
                    ),
                    "overwrite": ToolParameter(
                        type="boolean", description="Replace an existing file", default=False
                    ),
                },
            ),
            handler=partial(move_file, sandbox),
            category=CATEGORY,
        ),
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "delete_file",
                "Delete a file, or a directory with recursive set",
                {
                    "path": ToolParameter(
                        type="string", description="File or directory to delete", required=True
                    ),
                    "recursive": ToolParameter(
                        type="boolean", description="Delete a directory and its contents", default=False
                    ),
                },
            ),
            handler=partial(delete_file, sandbox),
            category=CATEGORY,
        ),
    ]
