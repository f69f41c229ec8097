"""Error classes for bibble."""

from typing import Optional


class ProviderError(Exception):
    """Base exception for all provider-related errors."""

    def __init__(self, message: str, *, provider_name: Optional[str] = None):
        self.provider_name = provider_name
        super().__init__(message)

    def __str__(self) -> str:
        if self.provider_name:
            return f"[{self.provider_name}] {super().__str__()}"
        return super().__str__()


class ConfigError(ProviderError):
    """Raised when there is an error in provider or application configuration."""
    pass


class ProviderTransportError(ProviderError):
    """Raised when a provider request or stream fails at the transport level."""
    pass


class SecurityError(Exception):
    """Base exception for tool calls stopped by the security layer.

    Attributes:
        tool_name: Tool that was being called
        server_name: Server that owns the tool
        reason: One of "blocked", "denied", "timeout" or "policy"
    """

    def __init__(self, message: str, tool_name: str, server_name: str, reason: str = "policy"):
        self.tool_name = tool_name
        self.server_name = server_name
        self.reason = reason
        super().__init__(message)


class ToolBlockedError(SecurityError):
    """Raised when the security policy denies a tool call outright."""

    def __init__(self, tool_name: str, server_name: str):
        super().__init__(
            f"Tool is blocked by security policy: {tool_name} from {server_name}",
            tool_name,
            server_name,
            reason="blocked"
        )


class ToolDeniedError(SecurityError):
    """Raised when the user declines a tool confirmation."""

    def __init__(self, tool_name: str, server_name: str):
        super().__init__(
            f"Tool execution denied by user: {tool_name} from {server_name}",
            tool_name,
            server_name,
            reason="denied"
        )


class ToolTimeoutError(SecurityError):
    """Raised when a remote tool call exceeds its time bound.

    Attributes:
        timeout: The bound that was exceeded, in seconds
    """

    def __init__(self, tool_name: str, server_name: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Tool execution timed out after {timeout:g}s: {tool_name} from {server_name}",
            tool_name,
            server_name,
            reason="timeout"
        )


class ToolExecutionError(Exception):
    """Raised when a built-in or remote tool fails."""

    def __init__(self, message: str, tool_name: Optional[str] = None):
        self.tool_name = tool_name
        super().__init__(message)


class AbortError(Exception):
    """Raised when the current chat call is cancelled by its abort signal."""

    def __init__(self, message: str = "Request aborted"):
        super().__init__(message)
