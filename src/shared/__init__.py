"""Shared models, configuration and logging for the tool dispatch engine."""

from shared.models import (
    ServerConfig,
    ServerKind,
    ToolDefinition,
    ToolErrorCode,
    ToolRequest,
    ToolResult,
    ToolResultStatus,
)
from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "ServerConfig",
    "ServerKind",
    "ToolDefinition",
    "ToolErrorCode",
    "ToolRequest",
    "ToolResult",
    "ToolResultStatus",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]
