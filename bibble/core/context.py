"""Process-scoped runtime state.

The built-in tool registry, the rate limiter it uses, the audit log and the
remote tool registry live for the whole process. They are built explicitly
here and handed to the components that need them, so tests can create a
fresh, isolated set per test case.
"""

from dataclasses import dataclass
from typing import Optional

from bibble.config.schemas import BuiltInToolsConfig, SecurityConfig
from bibble.core.rate_limit import RateLimiter
from bibble.core.registry import ToolRegistry
from bibble.mcp.tool_registry import RemoteToolRegistry
from bibble.security.audit import AuditLog


@dataclass
class RuntimeContext:
    """Shared registries and logs for one running chat client.

    Attributes:
        tool_registry: Built-in tools
        rate_limiter: Per-tool call counters used by the registry
        audit_log: Security audit trail for remote calls
        remote_tools: Remote tool ownership by server
    """

    tool_registry: ToolRegistry
    rate_limiter: RateLimiter
    audit_log: AuditLog
    remote_tools: RemoteToolRegistry

    @classmethod
    def create(
        cls,
        security_config: Optional[SecurityConfig] = None,
        tools_config: Optional[BuiltInToolsConfig] = None,
        with_builtin_tools: bool = False
    ) -> "RuntimeContext":
        """Build a fresh context.

        Args:
            security_config: Decides whether the audit log writes to disk
            tools_config: Sandbox limits for the built-in tools
            with_builtin_tools: Register the standard built-in tools

        Returns:
            A new RuntimeContext
        """
        security_config = security_config or SecurityConfig()
        rate_limiter = RateLimiter()
        context = cls(
            tool_registry=ToolRegistry(rate_limiter),
            rate_limiter=rate_limiter,
            audit_log=AuditLog(
                file_output=security_config.audit_logging,
                audit_dir=security_config.audit_dir
            ),
            remote_tools=RemoteToolRegistry(),
        )

        if with_builtin_tools:
            from bibble.tools import register_builtin_tools
            register_builtin_tools(context.tool_registry, tools_config or BuiltInToolsConfig())

        return context

    def teardown(self) -> None:
        """Drop all registered tools, counters and audit entries."""
        self.tool_registry.clear()
        self.rate_limiter.reset()
        self.audit_log.clear()
        self.remote_tools.clear()
