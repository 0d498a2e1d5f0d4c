"""Audit logging for dispatches.

Writes one JSON line per dispatch: tool, redacted parameters, outcome,
the server that answered and the per-server attempts.
"""

import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from shared.logging import get_logger
from shared.models import (
    DispatchAttempt,
    ToolErrorCode,
    ToolResult,
    ToolResultStatus,
)

logger = get_logger(__name__)


class AuditEntry(BaseModel):
    """Audit log entry for one dispatch."""
    id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    tool_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    status: ToolResultStatus
    error_code: Optional[ToolErrorCode] = None
    server: Optional[str] = None
    attempts: list[DispatchAttempt] = Field(default_factory=list)
    execution_time_ms: float = 0


class DispatchAuditLogger:
    """
    Append-only audit trail of dispatches.

    Parameters under sensitive keys are redacted before anything is
    written. Entries are written synchronously, one JSON object per line.
    """

    SENSITIVE_PARAMS = {
        "password",
        "token",
        "secret",
        "api_key",
        "apikey",
        "credential",
        "authorization",
    }

    def __init__(
        self,
        log_path: str | Path = "logs/dispatch_audit.log",
        enabled: bool = True
    ) -> None:
        self.log_path = Path(log_path)
        self.enabled = enabled
        self._lock = threading.Lock()

    def _redact_sensitive(self, params: Any) -> Any:
        """Redact sensitive parameters, recursing into mappings and lists."""
        if isinstance(params, dict):
            redacted = {}
            for key, value in params.items():
                if str(key).lower() in self.SENSITIVE_PARAMS:
                    redacted[key] = "[REDACTED]"
                else:
                    redacted[key] = self._redact_sensitive(value)
            return redacted
        if isinstance(params, list):
            return [self._redact_sensitive(item) for item in params]
        return params

    def create_entry(
        self,
        tool_name: str,
        parameters: dict[str, Any],
        result: ToolResult,
        attempts: list[DispatchAttempt]
    ) -> AuditEntry:
        """Create an audit entry from dispatch data."""
        return AuditEntry(
            id=str(uuid.uuid4()),
            tool_name=tool_name,
            parameters=self._redact_sensitive(parameters),
            status=result.status,
            error_code=result.error_code,
            server=result.server,
            attempts=attempts,
            execution_time_ms=result.execution_time_ms,
        )

    def log(
        self,
        tool_name: str,
        parameters: dict[str, Any],
        result: ToolResult,
        attempts: list[DispatchAttempt]
    ) -> Optional[AuditEntry]:
        """
        Record a dispatch.

        Returns:
            The written entry, or None when auditing is disabled
        """
        if not self.enabled:
            return None

        entry = self.create_entry(tool_name, parameters, result, attempts)

        with self._lock:
            try:
                self.log_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.log_path, "a", encoding="utf-8") as f:
                    f.write(entry.model_dump_json() + "\n")
            except (OSError, ValueError) as e:
                logger.error("Failed to write audit log", path=str(self.log_path), error=str(e))

        return entry

    def read_entries(self, limit: int = 100) -> list[AuditEntry]:
        """Read up to ``limit`` most recent entries."""
        if not self.log_path.exists():
            return []

        entries: list[AuditEntry] = []
        with open(self.log_path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(AuditEntry.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValueError):
                    continue
        return entries[-limit:]
