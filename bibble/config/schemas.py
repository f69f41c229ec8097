"""Configuration schemas for bibble.

These pydantic models describe the JSON configuration file that the config
store loads. Field names are snake_case; camelCase aliases are accepted so
configuration written by older clients keeps loading.
"""

from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bibble.mcp.schemas import ServerConfig

SecurityPolicy = Literal["trusted", "prompt", "preview", "strict"]
ToolRiskLevel = Literal["safe", "moderate", "sensitive"]
ReasoningEffort = Literal["low", "medium", "high"]

DEFAULT_CONFIG_DIR = Path.home() / ".bibble"


class _ConfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SecurityConfig(_ConfigModel):
    """Security policy for remote tool calls."""

    default_policy: SecurityPolicy = Field("trusted", alias="defaultPolicy")
    require_confirmation_globally: bool = Field(False, alias="requireConfirmationGlobally")
    preview_tool_inputs: bool = Field(True, alias="previewToolInputs")
    audit_logging: bool = Field(False, alias="auditLogging")
    audit_dir: Optional[str] = Field(None, alias="auditDir")
    tool_timeout: float = Field(30.0, alias="toolTimeout", description="Seconds")
    sensitive_operations: List[str] = Field(default_factory=list, alias="sensitiveOperations")
    risk_overrides: Dict[str, ToolRiskLevel] = Field(default_factory=dict, alias="riskOverrides")
    server_policies: Dict[str, SecurityPolicy] = Field(default_factory=dict, alias="serverPolicies")
    allowed_tools: Dict[str, List[str]] = Field(default_factory=dict, alias="allowedTools")
    blocked_tools: Dict[str, List[str]] = Field(default_factory=dict, alias="blockedTools")
    server_timeouts: Dict[str, float] = Field(default_factory=dict, alias="serverTimeouts")

    @field_validator('tool_timeout')
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        """Validate that the global timeout is positive."""
        if v <= 0:
            raise ValueError("toolTimeout must be positive")
        return v

    def policy_for(self, server_name: str) -> SecurityPolicy:
        return self.server_policies.get(server_name, self.default_policy)

    def timeout_for(self, server_name: str) -> float:
        return self.server_timeouts.get(server_name, self.tool_timeout)


class ModelConfig(_ConfigModel):
    """One entry of the model registry."""

    id: str
    provider: str = "openai"
    name: Optional[str] = None
    max_tokens: Optional[int] = Field(None, alias="maxTokens")
    max_completion_tokens: Optional[int] = Field(None, alias="maxCompletionTokens")
    temperature: Optional[float] = None
    top_p: Optional[float] = Field(None, alias="topP")
    top_k: Optional[int] = Field(None, alias="topK")
    reasoning_effort: Optional[ReasoningEffort] = Field(None, alias="reasoningEffort")
    is_reasoning_model: bool = Field(False, alias="isReasoningModel")


class BuiltInToolsConfig(_ConfigModel):
    """Sandbox limits for the built-in tools."""

    enabled: bool = True
    allowed_directories: List[str] = Field(default_factory=list, alias="allowedDirectories")
    blocked_paths: List[str] = Field(
        default_factory=lambda: [
            "/etc/passwd", "/etc/shadow", "/etc/sudoers",
            "**/.ssh/**", "**/.env", "**/.env.*",
            "**/*_rsa", "**/*_dsa", "**/*_ed25519", "**/*.pem", "**/*.key",
        ],
        alias="blockedPaths"
    )
    max_file_size: int = Field(10 * 1024 * 1024, alias="maxFileSize")
    blocked_commands: List[str] = Field(
        default_factory=lambda: [
            "sudo", "su", "doas", "rm", "rmdir", "del",
            "chmod", "chown", "chgrp", "passwd",
            "mkfs", "fdisk", "format", "dd", "shred",
            "shutdown", "reboot", "halt", "systemctl", "service",
            "mount", "umount", "iptables", "crontab",
        ],
        alias="blockedCommands"
    )
    allowed_commands: List[str] = Field(default_factory=list, alias="allowedCommands")
    command_timeout: float = Field(30.0, alias="commandTimeout")
    max_search_results: int = Field(500, alias="maxSearchResults")


class MCPServerEntry(ServerConfig):
    """A configured MCP server with its on/off switch."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: bool = True


class BibbleConfig(_ConfigModel):
    """Top-level configuration document."""

    default_provider: str = Field("openai", alias="defaultProvider")
    default_model: str = Field("gpt-4o", alias="defaultModel")
    user_guidelines: str = Field("", alias="userGuidelines")
    max_turns: int = Field(25, alias="maxTurns")
    models: List[ModelConfig] = Field(default_factory=list)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    mcp_servers: Dict[str, MCPServerEntry] = Field(default_factory=dict, alias="mcpServers")
    tools: BuiltInToolsConfig = Field(default_factory=BuiltInToolsConfig)

    @field_validator('max_turns')
    @classmethod
    def max_turns_positive(cls, v: int) -> int:
        """Validate that the turn bound is at least one."""
        if v < 1:
            raise ValueError("maxTurns must be at least 1")
        return v
