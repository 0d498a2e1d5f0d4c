"""Configuration management for the tool dispatch engine.

Supports a YAML settings file and environment variable overrides.
Settings are loaded once and cached; the server configuration document
itself is read by ``dispatch.config_store`` on every dispatch.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main application settings."""
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)

    # Dispatch
    config_path: str = Field(
        default="config/servers.json",
        description="Location of the server configuration document"
    )
    workspace_root: str = Field(
        default=".",
        description="Root directory for filesystem and version-control tools"
    )
    vcs_binary: str = Field(default="git")

    # Audit
    enable_audit: bool = Field(default=False)
    audit_log_path: str = Field(default="logs/dispatch_audit.log")

    model_config = SettingsConfigDict(
        env_prefix="TOOL_DISPATCH_",
        env_file=".env",
        extra="ignore"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        return cls(**load_yaml_config(path))

    def resolved_workspace_root(self) -> Path:
        """Absolute workspace root."""
        return Path(self.workspace_root).expanduser().resolve()


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file."""
    path = Path(path)
    if not path.exists():
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    settings_path = os.environ.get("TOOL_DISPATCH_SETTINGS_PATH", "config/settings.yaml")
    return Settings.from_yaml(settings_path)
