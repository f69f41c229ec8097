"""Shell commands and process management."""

import asyncio
import contextlib
import logging
import os
import signal
import time
from functools import partial
from typing import Any, Dict, List, Optional

from bibble.core.errors import ToolExecutionError
from bibble.core.registry import BuiltInTool
from bibble.tools.sandbox import ToolSandbox
from bibble.types.models import ToolDefinition, ToolParameter, ToolResult

logger = logging.getLogger(__name__)

# Characters of stdout/stderr kept in the result
MAX_OUTPUT_CHARS = 100_000


def _truncate(output: bytes) -> str:
    text = output.decode("utf-8", errors="replace")
    if len(text) > MAX_OUTPUT_CHARS:
        return text[:MAX_OUTPUT_CHARS] + f"\n... [truncated {len(text) - MAX_OUTPUT_CHARS} characters]"
    return text


def _effective_timeout(sandbox: ToolSandbox, requested: Optional[Any]) -> float:
    if requested is None:
        return sandbox.command_timeout
    try:
        value = float(requested)
    except (TypeError, ValueError):
        raise ToolExecutionError(f"Invalid timeout: {requested}")
    if value <= 0:
        raise ToolExecutionError("Timeout must be positive")
    return min(value, sandbox.command_timeout)


async def execute_command(sandbox: ToolSandbox, params: Dict[str, Any]) -> ToolResult:
    """Run a shell command and capture its output.

    Args:
        params: Dictionary containing:
            - command: Shell command line
            - cwd: Working directory (default: current directory)
            - timeout: Seconds before the command is killed, capped by the
              configured limit

    Raises:
        ToolExecutionError: If the command is not allowed or times out
    """
    command = sandbox.check_command(str(params["command"]))
    cwd = sandbox.check_path(params["cwd"]) if params.get("cwd") else None
    timeout = _effective_timeout(sandbox, params.get("timeout"))

    start_time = time.time()
    process = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(cwd) if cwd else None,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError:
        logger.warning("Command timed out", extra={"timeout": timeout})
        raise ToolExecutionError(f"Command timed out after {timeout:g}s")
    finally:
        # Also reached when the calling task is cancelled
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()

    duration_ms = int((time.time() - start_time) * 1000)
    logger.debug("Command finished", extra={
        "exit_code": process.returncode,
        "duration_ms": duration_ms
    })
    return ToolResult.ok(data={
        "command": command,
        "exit_code": process.returncode,
        "stdout": _truncate(stdout),
        "stderr": _truncate(stderr),
        "duration_ms": duration_ms,
        "success": process.returncode == 0,
    })


# Columns asked of ps; memory is resident size in KiB
PS_COMMAND = ("ps", "-eo", "pid=,pcpu=,rss=,stat=,args=")

SORT_KEYS = {
    "pid": (lambda proc: proc["pid"], False),
    "name": (lambda proc: proc["name"].lower(), False),
    "cpu": (lambda proc: proc["cpu"], True),
    "memory": (lambda proc: proc["memory_kb"], True),
}


def parse_process_list(output: str) -> List[Dict[str, Any]]:
    """Parse the output of PS_COMMAND, skipping lines that do not fit."""
    processes: List[Dict[str, Any]] = []
    for line in output.splitlines():
        fields = line.split(None, 4)
        if len(fields) < 5:
            continue
        pid, cpu, rss, status, command = fields
        try:
            processes.append({
                "pid": int(pid),
                "name": os.path.basename(command.split()[0]),
                "command": command,
                "cpu": float(cpu),
                "memory_kb": int(rss),
                "status": status,
            })
        except ValueError:
            continue
    return processes


async def list_processes() -> List[Dict[str, Any]]:
    """Every running process, as reported by ps."""
    try:
        process = await asyncio.create_subprocess_exec(
            *PS_COMMAND,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        raise ToolExecutionError("Cannot list processes: ps is not available")
    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        raise ToolExecutionError(f"Failed to list processes: {_truncate(stderr).strip()}")
    return parse_process_list(stdout.decode("utf-8", errors="replace"))


async def get_processes(sandbox: ToolSandbox, params: Dict[str, Any]) -> ToolResult:
    """List running processes.

    Args:
        params: Dictionary containing:
            - name_filter: Case-insensitive substring of the name or command
            - sort_by: pid, name, cpu or memory (default pid)
            - limit: Most processes to return (default 100)
    """
    try:
        limit = int(params.get("limit") or 100)
    except (TypeError, ValueError):
        raise ToolExecutionError(f"Invalid limit: {params.get('limit')}")
    if limit <= 0:
        raise ToolExecutionError("Limit must be positive")
    limit = min(limit, sandbox.max_search_results)
    sort_by = params.get("sort_by") or "pid"
    if sort_by not in SORT_KEYS:
        raise ToolExecutionError(f"Cannot sort by: {sort_by}")

    processes = await list_processes()
    name_filter = (params.get("name_filter") or "").lower()
    if name_filter:
        processes = [
            proc for proc in processes
            if name_filter in proc["name"].lower() or name_filter in proc["command"].lower()
        ]
    key, reverse = SORT_KEYS[sort_by]
    processes.sort(key=key, reverse=reverse)

    return ToolResult.ok(data={
        "processes": processes[:limit],
        "total": len(processes),
        "truncated": len(processes) > limit,
    })


def _signal_for(name: str, force: bool) -> signal.Signals:
    if force:
        return signal.SIGKILL
    name = name.upper()
    if not name.startswith("SIG"):
        name = f"SIG{name}"
    try:
        return signal.Signals[name]
    except KeyError:
        raise ToolExecutionError(f"Unknown signal: {name}")


async def kill_process(sandbox: ToolSandbox, params: Dict[str, Any]) -> ToolResult:
    """Send a signal to a process.

    The process must show up in the process list; this chat process, its
    parent and critical system processes are refused.

    Args:
        params: Dictionary containing:
            - pid: Process ID
            - signal: Signal name (default SIGTERM)
            - force: Send SIGKILL instead (default False)
    """
    try:
        pid = int(params["pid"])
    except (TypeError, ValueError):
        raise ToolExecutionError(f"Invalid process ID: {params['pid']}")
    signum = _signal_for(str(params.get("signal") or "SIGTERM"), bool(params.get("force")))
    sandbox.check_kill_target(pid)

    target = next((proc for proc in await list_processes() if proc["pid"] == pid), None)
    if target is None:
        return ToolResult.ok(data={"pid": pid, "killed": False}, message=f"Process with PID {pid} not found")
    sandbox.check_kill_target(pid, target["name"])

    try:
        os.kill(pid, signum)
    except ProcessLookupError:
        return ToolResult.ok(data={"pid": pid, "killed": False}, message=f"Process with PID {pid} not found")
    except PermissionError:
        raise ToolExecutionError(f"Permission denied: cannot signal process {pid}")

    logger.info("Signalled process", extra={"pid": pid, "signal": signum.name, "process_name": target["name"]})
    return ToolResult.ok(
        data={"pid": pid, "name": target["name"], "signal": signum.name, "killed": True},
        message=f"Sent {signum.name} to process {pid} ({target['name']})",
    )


def process_tools(sandbox: ToolSandbox) -> List[BuiltInTool]:
    """Build the process tools bound to a sandbox."""
    return [
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "execute_command",
                "Run a shell command and return its exit code and output",
                {
                    "command": ToolParameter(
                        type="string", description="Command line to run", required=True
                    ),
                    "cwd": ToolParameter(
                        type="string", description="Working directory for the command"
                    ),
                    "timeout": ToolParameter(
                        type="number", description="Timeout in seconds"
                    ),
                },
            ),
            handler=partial(execute_command, sandbox),
            category="process",
        ),
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "get_processes",
                "List running processes with their CPU and memory use",
                {
                    "name_filter": ToolParameter(
                        type="string", description="Only processes whose name or command contains this"
                    ),
                    "sort_by": ToolParameter(
                        type="string",
                        description="Sort order",
                        default="pid",
                        enum=list(SORT_KEYS),
                    ),
                    "limit": ToolParameter(
                        type="integer", description="Most processes to return", default=100
                    ),
                },
            ),
            handler=partial(get_processes, sandbox),
            category="process",
        ),
        BuiltInTool(
            definition=ToolDefinition.from_parameters(
                "kill_process",
                "Send a signal to a process, refusing critical system processes",
                {
                    "pid": ToolParameter(
                        type="integer", description="Process ID", required=True
                    ),
                    "signal": ToolParameter(
                        type="string", description="Signal name such as SIGTERM or SIGINT", default="SIGTERM"
                    ),
                    "force": ToolParameter(
                        type="boolean", description="Send SIGKILL", default=False
                    ),
                },
            ),
            handler=partial(kill_process, sandbox),
            category="process",
        ),
    ]
