"""Configuration models and stores."""

from bibble.config.schemas import (
    BibbleConfig,
    BuiltInToolsConfig,
    MCPServerEntry,
    ModelConfig,
    SecurityConfig,
)
from bibble.config.store import ConfigStore, DictConfigStore, FileConfigStore

__all__ = [
    "BibbleConfig",
    "BuiltInToolsConfig",
    "MCPServerEntry",
    "ModelConfig",
    "SecurityConfig",
    "ConfigStore",
    "DictConfigStore",
    "FileConfigStore",
]
