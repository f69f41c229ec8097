"""Security policy engine for remote tool calls.

The engine answers three questions for the tool bridge: may this call run
(``evaluate``), does the user agree (``maybe_confirm``), and did it finish in
time (``with_timeout``). It also records the outcome of every attempt
(``log``).

Decision order for ``evaluate``:
    1. Tool listed in the server's blocked tools: deny
    2. Tool listed in the server's allowed tools: allow
    3. Sensitive tool under any policy other than "trusted": prompt
    4. Global confirmation switched on: prompt
    5. "trusted" policy: allow
    6. Any other policy: prompt
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from bibble.config.schemas import SecurityConfig
from bibble.security.audit import AuditLog, AuditLogEntry
from bibble.security.classifier import ToolRisk, classify_tool_risk, describe_risk
from bibble.utils.log_utils import sanitize_log_message

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SecurityDecision(str, Enum):
    """Outcome of evaluating a remote tool call."""

    ALLOW = "allow"
    PROMPT = "prompt"
    DENY = "deny"


@dataclass(frozen=True)
class ConfirmationRequest:
    """Everything a confirmation prompt needs to show the user.

    Attributes:
        tool_name: Tool about to run
        server_name: Server that owns it
        args: Arguments the model supplied
        risk: Classified risk level
        risk_description: Human-readable explanation of the risk level
        policy: Effective policy for the server
        show_args: Whether the arguments should be previewed
    """

    tool_name: str
    server_name: str
    args: Dict[str, Any] = field(default_factory=dict)
    risk: ToolRisk = ToolRisk.MODERATE
    risk_description: str = ""
    policy: str = "trusted"
    show_args: bool = True


ConfirmCallback = Callable[[ConfirmationRequest], Awaitable[bool]]


def _discard_late_result(task: "asyncio.Future[Any]") -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug("Timed-out tool call finished with error", extra={
            "error": sanitize_log_message(str(error))
        })


class SecurityPolicyEngine:
    """Evaluates, confirms, times and audits remote tool calls.

    Attributes:
        config: Active security configuration
        audit_log: Shared audit log the engine appends to
    """

    def __init__(
        self,
        config: Optional[SecurityConfig] = None,
        audit_log: Optional[AuditLog] = None,
        confirm: Optional[ConfirmCallback] = None
    ):
        """Initialize the engine.

        Args:
            config: Security configuration; defaults apply if omitted
            audit_log: Audit log to record into; a new one is created if omitted
            confirm: Coroutine asking the user to approve a call; the
                terminal prompt is used if omitted
        """
        self.config = config or SecurityConfig()
        if audit_log is None:
            audit_log = AuditLog(
                file_output=self.config.audit_logging,
                audit_dir=self.config.audit_dir
            )
        self.audit_log = audit_log
        if confirm is None:
            from bibble.security.prompt import console_confirm
            confirm = console_confirm
        self._confirm = confirm
        self._prompt_lock = asyncio.Lock()

    def classify(self, tool_name: str) -> ToolRisk:
        """Risk level for a tool, honoring configured overrides."""
        if tool_name in self.config.sensitive_operations:
            return ToolRisk.SENSITIVE
        return classify_tool_risk(tool_name, self.config.risk_overrides)

    def evaluate(
        self,
        tool_name: str,
        server_name: str,
        args: Optional[Dict[str, Any]] = None
    ) -> SecurityDecision:
        """Decide whether a remote tool call may run.

        Pure function of the inputs and the configuration.

        Args:
            tool_name: Tool being called
            server_name: Server that owns the tool
            args: Tool arguments (currently not used by the rules)

        Returns:
            allow, prompt or deny
        """
        if tool_name in self.config.blocked_tools.get(server_name, []):
            return SecurityDecision.DENY

        if tool_name in self.config.allowed_tools.get(server_name, []):
            return SecurityDecision.ALLOW

        policy = self.config.policy_for(server_name)
        risk = self.classify(tool_name)

        if risk is ToolRisk.SENSITIVE and policy != "trusted":
            return SecurityDecision.PROMPT

        if self.config.require_confirmation_globally:
            return SecurityDecision.PROMPT

        if policy == "trusted":
            return SecurityDecision.ALLOW

        return SecurityDecision.PROMPT

    async def maybe_confirm(
        self,
        tool_name: str,
        server_name: str,
        args: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Ask the user to approve a call that evaluated to prompt.

        Prompts are serialized so only one is ever on screen.

        Returns:
            True if the user approved, False otherwise (including when the
            prompt itself fails)
        """
        policy = self.config.policy_for(server_name)
        risk = self.classify(tool_name)
        request = ConfirmationRequest(
            tool_name=tool_name,
            server_name=server_name,
            args=dict(args or {}),
            risk=risk,
            risk_description=describe_risk(risk),
            policy=policy,
            show_args=self.config.preview_tool_inputs or policy in ("preview", "strict"),
        )

        async with self._prompt_lock:
            try:
                approved = bool(await self._confirm(request))
            except (EOFError, KeyboardInterrupt):
                approved = False
            except Exception as e:
                logger.error("Tool confirmation failed", extra={
                    "tool_name": tool_name,
                    "server_name": server_name,
                    "error": sanitize_log_message(str(e))
                }, exc_info=True)
                approved = False

        logger.info("Tool confirmation answered", extra={
            "tool_name": tool_name,
            "server_name": server_name,
            "approved": approved
        })
        return approved

    def timeout_for(self, server_name: str) -> float:
        return self.config.timeout_for(server_name)

    async def with_timeout(self, awaitable: Awaitable[T], server_name: str) -> T:
        """Run a remote call under the server's time bound.

        The call is shielded: when the bound expires the caller stops waiting,
        but the call itself keeps running and its result is dropped.

        Raises:
            asyncio.TimeoutError: If the bound expires first
        """
        timeout = self.timeout_for(server_name)
        task = asyncio.ensure_future(awaitable)
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            task.add_done_callback(_discard_late_result)
            logger.warning("Tool call timed out", extra={
                "server_name": server_name,
                "timeout": timeout
            })
            raise

    def log(
        self,
        server_name: str,
        tool_name: str,
        decision: str,
        args: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[int] = None,
        error: Optional[str] = None
    ) -> Optional[AuditLogEntry]:
        """Record one audit entry. Never raises.

        Returns:
            The recorded entry, or None if recording failed
        """
        try:
            if isinstance(decision, SecurityDecision):
                decision = decision.value
            return self.audit_log.record(
                server_name=server_name,
                tool_name=tool_name,
                decision=decision,
                args=args,
                duration_ms=duration_ms,
                error=error,
            )
        except Exception as e:
            logger.warning("Failed to record audit entry", extra={
                "tool_name": tool_name,
                "server_name": server_name,
                "error": sanitize_log_message(str(e))
            })
            return None
