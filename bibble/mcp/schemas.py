"""Configuration schemas for MCP servers."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class ServerConfig(BaseModel):
    """Schema for individual server configuration."""
    command: str = Field(..., description="Command to start the server")
    args: List[str] = Field(default_factory=list, description="Arguments for the server command")
    env: Optional[Dict[str, str]] = Field(None, description="Environment variables for the server")
    cwd: Optional[str] = Field(None, description="Working directory for the server process")

    @field_validator('command')
    @classmethod
    def command_not_empty(cls, v: str) -> str:
        """Validate that command is not empty."""
        if not v.strip():
            raise ValueError("Command cannot be empty")
        return v

    @field_validator('args')
    @classmethod
    def validate_args(cls, v: List[str]) -> List[str]:
        """Validate args list contains valid strings when present."""
        if v and any(not isinstance(arg, str) or not arg.strip() for arg in v):
            raise ValueError("All args must be non-empty strings")
        return v
