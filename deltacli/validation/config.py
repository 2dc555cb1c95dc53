"""
Delta CLI Configuration - Configuration loading and validation.

This module provides the Config class for managing Delta CLI configuration
from both global (~/.delta-cli/config.yaml) and local (.delta-cli/config.yaml)
sources.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from deltacli.core.executor import DEFAULT_LONG_RUNNING_PATTERNS
from deltacli.core.orchestrator import ExecutionPolicy
from deltacli.core.workspace import DEFAULT_IGNORE_PATTERNS

DEFAULT_MODEL = "gemini-2.0-flash"


class ConfigError(Exception):
    """Raised when there's a configuration error."""

    pass


class ProviderConfig(BaseModel):
    """Configuration for an LLM provider."""

    api_key: Optional[str] = None
    api_base: Optional[str] = None
    enabled: bool = True


class AgentConfig(BaseModel):
    """Configuration for completion requests."""

    model: str = DEFAULT_MODEL
    max_tokens: int = 4000
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    timeout: int = 120


class ExecutionConfig(BaseModel):
    """Configuration for applying replies to the workspace."""

    auto_execute: bool = True
    backup: bool = True
    command_timeout: float = 30
    long_running_timeout: float = 120
    command_delay: float = 0.5
    long_running_patterns: List[str] = Field(
        default_factory=lambda: list(DEFAULT_LONG_RUNNING_PATTERNS)
    )


class WorkspaceConfig(BaseModel):
    """Configuration for workspace views."""

    ignore_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS))
    tree_depth: int = 3


class DeltaConfig(BaseModel):
    """Complete Delta CLI configuration schema."""

    providers: Dict[str, ProviderConfig] = Field(default_factory=dict)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)


class Config:
    """
    Delta CLI configuration manager.

    Handles loading, merging, and validating configuration from:
    - Global: ~/.delta-cli/config.yaml
    - Local: .delta-cli/config.yaml (project-specific)

    Local configuration overrides global configuration. Runtime overrides
    (command-line options) sit on top of both and are never saved.

    Example:
        >>> config = Config.load()
        >>> config.set_model("gemini-1.5-pro")
        >>> config.save()
    """

    GLOBAL_CONFIG_DIR = Path.home() / ".delta-cli"
    LOCAL_CONFIG_DIR = Path(".delta-cli")

    def __init__(
        self,
        global_config: Optional[Dict[str, Any]] = None,
        local_config: Optional[Dict[str, Any]] = None,
        global_dir: Optional[Path] = None,
        local_path: Optional[Path] = None,
    ):
        """
        Initialize Config.

        Args:
            global_config: Global configuration dictionary.
            local_config: Local (project) configuration dictionary.
            global_dir: Where the global config and session live.
            local_path: The local config file the local dictionary came from.
        """
        self._global_config = global_config or {}
        self._local_config = local_config or {}
        self._overrides: Dict[str, Any] = {}
        self.global_dir = Path(global_dir) if global_dir else self.GLOBAL_CONFIG_DIR
        self.local_path = local_path
        self._merged: Optional[DeltaConfig] = None

    @classmethod
    def load(cls, global_dir: Optional[Path] = None) -> "Config":
        """
        Load configuration from default locations.

        Returns:
            Config instance with loaded configuration.
        """
        global_dir = Path(global_dir) if global_dir else cls.GLOBAL_CONFIG_DIR
        local_path = cls._find_local_config()
        global_config = cls._load_yaml(global_dir / "config.yaml")
        local_config = cls._load_yaml(local_path)

        return cls(
            global_config=global_config,
            local_config=local_config,
            global_dir=global_dir,
            local_path=local_path,
        )

    @classmethod
    def _load_yaml(cls, path: Optional[Path]) -> Dict[str, Any]:
        """Load YAML file if it exists."""
        if path is None or not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
                return data if data else {}
        except Exception as e:
            raise ConfigError(f"Failed to load config from {path}: {e}")

    @classmethod
    def _find_local_config(cls) -> Optional[Path]:
        """Find the local config file by walking up the directory tree."""
        current = Path.cwd()
        while current != current.parent:
            config_path = current / cls.LOCAL_CONFIG_DIR / "config.yaml"
            if config_path.exists():
                return config_path
            current = current.parent
        return None

    @property
    def session_path(self) -> Path:
        return self.global_dir / "session.yaml"

    def get_merged_config(self) -> Dict[str, Any]:
        """Get the merged configuration as a dictionary."""
        merged = self._deep_merge(self._global_config.copy(), self._local_config)
        return self._deep_merge(merged, self._overrides)

    @property
    def merged(self) -> DeltaConfig:
        """Get the validated merged configuration."""
        if self._merged is None:
            try:
                self._merged = DeltaConfig(**self.get_merged_config())
            except ValidationError as e:
                raise ConfigError(f"Invalid configuration: {e}")
        return self._merged

    @property
    def model(self) -> str:
        return self.merged.agent.model

    @property
    def auto_execute(self) -> bool:
        return self.merged.execution.auto_execute

    def set_model(self, model_name: str, global_: bool = True) -> None:
        """Set the default model."""
        self._set("agent", "model", model_name, global_)

    def set_temperature(self, temperature: float, global_: bool = True) -> None:
        self._set("agent", "temperature", temperature, global_)

    def set_auto_execute(self, enabled: bool, global_: bool = True) -> None:
        self._set("execution", "auto_execute", enabled, global_)

    def override(self, section: str, key: str, value: Any) -> None:
        """Set a value for this run only; ``save`` never writes it."""
        self._overrides.setdefault(section, {})[key] = value
        self._merged = None

    def _set(self, section: str, key: str, value: Any, global_: bool) -> None:
        config = self._global_config if global_ else self._local_config
        config.setdefault(section, {})[key] = value
        # A saved choice replaces any runtime override of the same key
        self._overrides.get(section, {}).pop(key, None)
        self._merged = None  # Reset cache

    def get_provider_config(self, provider_name: str) -> Optional[ProviderConfig]:
        """Get configuration for a specific provider."""
        return self.merged.providers.get(provider_name)

    def get_api_key(self, provider_name: str) -> Optional[str]:
        """
        Get API key for a provider.

        Checks config first, then environment variables.
        """
        provider = self.get_provider_config(provider_name)
        if provider and provider.api_key:
            return provider.api_key

        env_var_map = {
            "google": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
            "openai": ("OPENAI_API_KEY",),
            "anthropic": ("ANTHROPIC_API_KEY",),
            "openrouter": ("OPENROUTER_API_KEY",),
            "groq": ("GROQ_API_KEY",),
            "together": ("TOGETHER_API_KEY",),
        }

        for env_var in env_var_map.get(provider_name, ()):
            value = os.environ.get(env_var)
            if value:
                return value

        return None

    def execution_policy(self) -> ExecutionPolicy:
        """Build the orchestrator policy from the execution/workspace sections."""
        execution = self.merged.execution
        workspace = self.merged.workspace
        return ExecutionPolicy(
            backup=execution.backup,
            command_timeout=execution.command_timeout,
            long_running_timeout=execution.long_running_timeout,
            command_delay=execution.command_delay,
            long_running_patterns=tuple(execution.long_running_patterns),
            tree_depth=workspace.tree_depth,
            ignore_patterns=tuple(workspace.ignore_patterns),
        )

    def save(self) -> None:
        """Save configuration to files."""
        self._save_yaml(self.global_dir / "config.yaml", self._global_config)

        if self.local_path:
            self._save_yaml(self.local_path, self._local_config)

    def _save_yaml(self, path: Path, data: Dict[str, Any]) -> None:
        """Save data to a YAML file."""
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result
