"""Path, command and process checks shared by the built-in tools."""

import fnmatch
import logging
import os
import shlex
from pathlib import Path
from typing import List, Optional, Union

from bibble.config.schemas import BuiltInToolsConfig
from bibble.core.errors import ToolExecutionError

logger = logging.getLogger(__name__)

# init and the first kernel threads
PROTECTED_PIDS = frozenset({1, 2, 3, 4})
CRITICAL_PROCESSES = frozenset({
    "init", "systemd", "launchd", "kthreadd", "sshd", "csrss.exe", "winlogon.exe",
})


class ToolSandbox:
    """Decides which paths and commands the built-in tools may touch.

    Attributes:
        config: The limits in force
        allowed_roots: Resolved directories under which access is allowed
    """

    def __init__(self, config: Optional[BuiltInToolsConfig] = None):
        self.config = config or BuiltInToolsConfig()
        roots = self.config.allowed_directories or [str(Path.cwd()), str(Path.home())]
        self.allowed_roots: List[Path] = [Path(root).expanduser().resolve() for root in roots]

    @property
    def max_file_size(self) -> int:
        return self.config.max_file_size

    @property
    def command_timeout(self) -> float:
        return self.config.command_timeout

    @property
    def max_search_results(self) -> int:
        return self.config.max_search_results

    def is_blocked_path(self, path: Path) -> bool:
        text = path.as_posix()
        for pattern in self.config.blocked_paths:
            if fnmatch.fnmatch(text, pattern) or fnmatch.fnmatch(path.name, pattern):
                return True
        return False

    def is_within_roots(self, path: Path) -> bool:
        return any(path == root or root in path.parents for root in self.allowed_roots)

    def check_path(self, path: Union[str, Path]) -> Path:
        """Resolve a path and make sure it may be accessed.

        Returns:
            The resolved absolute path

        Raises:
            ToolExecutionError: If the path is empty, blocked or outside the
                allowed directories
        """
        if not str(path).strip():
            raise ToolExecutionError("Path cannot be empty")

        resolved = Path(path).expanduser().resolve()
        if self.is_blocked_path(resolved):
            logger.warning("Blocked path rejected", extra={"path": str(resolved)})
            raise ToolExecutionError(f"Access denied: '{resolved}' is a protected path")
        if not self.is_within_roots(resolved):
            logger.warning("Path outside allowed directories", extra={"path": str(resolved)})
            raise ToolExecutionError(
                f"Access denied: '{resolved}' is outside the allowed directories"
            )
        return resolved

    def check_file_size(self, path: Path) -> None:
        """Raise ToolExecutionError if a file is larger than the configured limit."""
        size = path.stat().st_size
        if size > self.max_file_size:
            raise ToolExecutionError(
                f"File too large: {size} bytes (limit {self.max_file_size} bytes)"
            )

    def check_command(self, command: str) -> str:
        """Make sure a shell command line may run.

        Every segment of a pipeline or command list is checked against the
        blocked list and, when configured, the allow list.

        Returns:
            The command unchanged

        Raises:
            ToolExecutionError: If the command is empty or not allowed
        """
        if not command.strip():
            raise ToolExecutionError("Command cannot be empty")

        for program in _programs(command):
            if program in self.config.blocked_commands:
                logger.warning("Blocked command rejected", extra={"program": program})
                raise ToolExecutionError(f"Command not allowed: {program}")
            if self.config.allowed_commands and program not in self.config.allowed_commands:
                raise ToolExecutionError(f"Command not in allowed list: {program}")
        return command

    def check_kill_target(self, pid: int, name: Optional[str] = None) -> None:
        """Refuse process IDs the process tools must never signal.

        Raises:
            ToolExecutionError: If the process may not be signalled
        """
        if pid <= 0:
            raise ToolExecutionError(f"Invalid process ID: {pid}")
        if pid in PROTECTED_PIDS:
            raise ToolExecutionError(f"Cannot kill protected system process (PID: {pid})")
        if pid in (os.getpid(), os.getppid()):
            raise ToolExecutionError("Cannot kill the chat process or its parent")
        if name and name.lower() in CRITICAL_PROCESSES:
            logger.warning("Critical process kill rejected", extra={"pid": pid, "process_name": name})
            raise ToolExecutionError(f"Cannot kill critical system process: {name}")


# Characters that end a word; runs of them form one token
PUNCTUATION = "();<>|&`"

SHELLS = frozenset({"sh", "bash", "zsh", "dash", "ksh"})
# Programs that run their arguments as another command
WRAPPERS = frozenset({"env", "exec", "nohup", "command", "time"})


def _programs(command: str) -> List[str]:
    """Program names of every simple command in a shell command line.

    Commands are split on list and pipeline operators, background ``&``,
    subshell parentheses and backticks. Command substitutions are checked
    even inside double quotes, and so are the scripts given to ``sh -c``,
    ``eval`` and wrappers such as ``env``.
    """
    programs: List[str] = []
    for inner in command.split("`")[1::2]:
        programs.extend(_programs(inner))
    start = command.find("$(")
    if start != -1:
        # The rest of the line; nested substitutions are found recursively
        programs.extend(_programs(command[start + 2:]))

    for words in _segments(command):
        while words and (words[0] in ("", "$") or _is_assignment(words[0])):
            words = words[1:]
        if not words:
            continue

        program = Path(words[0]).name
        programs.append(program)
        if program in SHELLS:
            script = _shell_script(words[1:])
            if script is not None:
                programs.extend(_programs(script))
        elif program == "eval":
            programs.extend(_programs(" ".join(words[1:])))
        elif program in WRAPPERS:
            rest = words[1:]
            while rest and rest[0].startswith("-"):
                rest = rest[1:]
            if rest:
                programs.extend(_programs(shlex.join(rest)))
    return programs


def _segments(command: str) -> List[List[str]]:
    """Split a command line into the words of each simple command."""
    command = command.replace("\n", ";")
    try:
        tokens = _tokenize(command)
    except ValueError:
        # Unbalanced quotes; fall back to a looser split
        for quote in "\"'\\":
            command = command.replace(quote, " ")
        tokens = _tokenize(command)

    segments: List[List[str]] = [[]]
    for token in tokens:
        if _is_separator(token):
            segments.append([])
        else:
            segments[-1].append(token)
    return [words for words in segments if words]


def _tokenize(command: str) -> List[str]:
    lexer = shlex.shlex(command, posix=True, punctuation_chars=PUNCTUATION)
    lexer.whitespace_split = True
    return list(lexer)


def _is_separator(token: str) -> bool:
    if not token or token.strip(PUNCTUATION):
        return False
    if any(char in token for char in "()`"):
        return True
    # Redirections such as 2>&1 and &> do not start a new command
    return "<" not in token and ">" not in token


def _is_assignment(word: str) -> bool:
    name, sep, _ = word.partition("=")
    return bool(sep) and name.isidentifier()


def _shell_script(args: List[str]) -> Optional[str]:
    """The command string passed to a shell with -c, if any."""
    for index, arg in enumerate(args):
        if arg.startswith("--"):
            continue
        if not arg.startswith("-"):
            break
        if "c" in arg[1:]:
            return args[index + 1] if index + 1 < len(args) else None
    return None
