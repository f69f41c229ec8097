"""Read-only configuration store.

The conversation core reads models, guidelines, security policy, MCP servers
and sandbox limits through the ConfigStore interface and never writes them.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from bibble.config.schemas import (
    DEFAULT_CONFIG_DIR,
    BibbleConfig,
    BuiltInToolsConfig,
    MCPServerEntry,
    ModelConfig,
    SecurityConfig,
)
from bibble.core.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.json"


class ConfigStore(ABC):
    """Interface the core uses to read configuration."""

    @abstractmethod
    def load(self) -> BibbleConfig:
        """Return the parsed configuration document."""
        pass

    def get_models(self) -> List[ModelConfig]:
        return self.load().models

    def get_default_model(self) -> str:
        return self.load().default_model

    def get_default_provider(self) -> str:
        return self.load().default_provider

    def get_user_guidelines(self) -> str:
        return self.load().user_guidelines

    def get_security_config(self) -> SecurityConfig:
        return self.load().security

    def get_mcp_servers(self) -> Dict[str, MCPServerEntry]:
        return {
            name: entry
            for name, entry in self.load().mcp_servers.items()
            if entry.enabled
        }

    def get_tools_config(self) -> BuiltInToolsConfig:
        return self.load().tools

    def get_max_turns(self) -> int:
        return self.load().max_turns


class DictConfigStore(ConfigStore):
    """Config store backed by an in-memory mapping."""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        try:
            self._config = BibbleConfig.model_validate(data or {})
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def load(self) -> BibbleConfig:
        return self._config


class FileConfigStore(ConfigStore):
    """Config store backed by a JSON file.

    A missing file yields the default configuration. The file is parsed once
    and cached until ``reload`` is called.
    """

    def __init__(self, path: Union[str, Path, None] = None):
        self.path = Path(path).expanduser() if path else DEFAULT_CONFIG_PATH
        self._config: Optional[BibbleConfig] = None

    def load(self) -> BibbleConfig:
        if self._config is None:
            self._config = self._read()
        return self._config

    def reload(self) -> BibbleConfig:
        self._config = None
        return self.load()

    def _read(self) -> BibbleConfig:
        """Parse the configuration file.

        Raises:
            ConfigError: If the file is not valid JSON or fails validation
        """
        if not self.path.exists():
            logger.info("Configuration file not found, using defaults", extra={
                "config_path": str(self.path)
            })
            return BibbleConfig()

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {self.path}: {e}") from e

        try:
            config = BibbleConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {self.path}: {e}") from e

        logger.debug("Configuration loaded", extra={
            "config_path": str(self.path),
            "num_models": len(config.models),
            "num_servers": len(config.mcp_servers)
        })
        return config
