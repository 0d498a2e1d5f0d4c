"""Tool dispatch - configuration, access control, credentials and routing.

``execute_tool`` is the caller-facing entry point. It loads the server
configuration, checks allow-lists and credentials, and runs the tool on
the first eligible server that succeeds.
"""

from typing import Any, Optional

from shared.config import Settings, get_settings
from shared.logging import setup_logging
from shared.models import ToolResult
from dispatch.access import check_access, is_allowed
from dispatch.audit import DispatchAuditLogger
from dispatch.config_store import (
    ConfigError,
    ConfigMalformedError,
    ConfigNotFoundError,
    ConfigStore,
)
from dispatch.credentials import CredentialResolver
from dispatch.dispatcher import Dispatcher

# Global dispatcher instance
_dispatcher: Optional[Dispatcher] = None


def build_dispatcher(settings: Settings) -> Dispatcher:
    """Create a dispatcher from settings."""
    audit_logger = None
    if settings.enable_audit:
        audit_logger = DispatchAuditLogger(log_path=settings.audit_log_path)

    return Dispatcher(
        config_store=ConfigStore(settings.config_path),
        root=settings.resolved_workspace_root(),
        audit_logger=audit_logger,
        vcs_binary=settings.vcs_binary,
    )


def get_dispatcher() -> Dispatcher:
    """Get or create the global dispatcher instance."""
    global _dispatcher
    if _dispatcher is None:
        settings = get_settings()
        setup_logging(settings.log_level, json_output=settings.json_logs)
        _dispatcher = build_dispatcher(settings)
    return _dispatcher


def reset_dispatcher() -> None:
    """Drop the global dispatcher so the next call rebuilds it."""
    global _dispatcher
    _dispatcher = None


def execute_tool(tool_name: str, parameters: Optional[dict[str, Any]] = None) -> ToolResult:
    """Execute a tool through the global dispatcher."""
    return get_dispatcher().execute(tool_name, parameters)


__all__ = [
    "ConfigError",
    "ConfigMalformedError",
    "ConfigNotFoundError",
    "ConfigStore",
    "CredentialResolver",
    "Dispatcher",
    "DispatchAuditLogger",
    "build_dispatcher",
    "check_access",
    "execute_tool",
    "get_dispatcher",
    "is_allowed",
    "reset_dispatcher",
]
