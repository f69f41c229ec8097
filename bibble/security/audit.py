"""Audit trail for remote tool calls.

Every remote tool call attempt produces exactly one AuditLogEntry. Entries are
kept in memory for the life of the process and, when enabled, appended as JSON
lines to a monthly file under the audit directory.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from bibble.utils.log_utils import hash_args, redact_sensitive_data, sanitize_log_message

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_DIR = Path.home() / ".bibble" / "audit"


@dataclass(frozen=True)
class AuditLogEntry:
    """One recorded security decision.

    Attributes:
        server_name: Server that owns the tool
        tool_name: Tool that was called
        decision: "allow" or "deny" (prompted calls record their outcome)
        args: Tool arguments with secrets redacted
        args_hash: Short fingerprint of the unredacted arguments
        duration_ms: Execution time for calls that ran
        error: Failure description for calls that did not succeed
        timestamp: ISO 8601 UTC timestamp
    """

    server_name: str
    tool_name: str
    decision: str
    args: Dict[str, Any] = field(default_factory=dict)
    args_hash: str = ""
    duration_ms: Optional[int] = None
    error: Optional[str] = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


class AuditLog:
    """Append-only store of audit entries.

    Attributes:
        entries: Entries in the order they were recorded
        file_output: Whether entries are also written to disk
        audit_dir: Directory for the monthly JSONL files
    """

    def __init__(
        self,
        file_output: bool = False,
        audit_dir: Union[str, Path, None] = None
    ):
        self.entries: List[AuditLogEntry] = []
        self.file_output = file_output
        self.audit_dir = Path(audit_dir).expanduser() if audit_dir else DEFAULT_AUDIT_DIR

    def record(
        self,
        server_name: str,
        tool_name: str,
        decision: str,
        args: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[int] = None,
        error: Optional[str] = None
    ) -> AuditLogEntry:
        """Create, store and persist an entry.

        Returns:
            The stored entry

        Note:
            File write failures are logged and otherwise ignored.
        """
        args = args or {}
        entry = AuditLogEntry(
            server_name=server_name,
            tool_name=tool_name,
            decision=decision,
            args=redact_sensitive_data(args) if isinstance(args, dict) else {},
            args_hash=hash_args(args),
            duration_ms=duration_ms,
            error=sanitize_log_message(error) if error else None,
        )
        self.entries.append(entry)

        if self.file_output:
            try:
                self._write(entry)
            except (OSError, TypeError, ValueError) as e:
                logger.warning("Failed to write audit log entry", extra={
                    "error": sanitize_log_message(str(e)),
                    "audit_dir": str(self.audit_dir)
                })

        return entry

    def current_file(self) -> Path:
        return self.audit_dir / f"mcp-{datetime.now(timezone.utc):%Y-%m}.log"

    def _write(self, entry: AuditLogEntry) -> None:
        self.audit_dir.mkdir(parents=True, exist_ok=True)
        with open(self.current_file(), "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), default=str) + "\n")

    def for_tool(self, tool_name: str) -> List[AuditLogEntry]:
        return [entry for entry in self.entries if entry.tool_name == tool_name]

    def clear(self) -> None:
        self.entries.clear()

    def __len__(self) -> int:
        return len(self.entries)
