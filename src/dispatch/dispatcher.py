"""Tool dispatcher.

Routes a tool request across the configured servers in document order
and returns the first successful result.
"""

import time
import uuid
from pathlib import Path
from typing import Any, Optional

from shared.logging import get_logger, log_context
from shared.models import (
    AttemptOutcome,
    DispatchAttempt,
    ServerConfig,
    ServerKind,
    ToolErrorCode,
    ToolRequest,
    ToolResult,
)
from dispatch.access import check_access
from dispatch.audit import DispatchAuditLogger
from dispatch.config_store import (
    ConfigError,
    ConfigNotFoundError,
    ConfigStore,
)
from dispatch.credentials import CredentialResolver
from executors import ExecutorFactory, create_executor, default_factories

logger = get_logger(__name__)


class Dispatcher:
    """
    Dispatches tool requests to configured servers.

    For each server, in document order:
    1. skip it when not enabled
    2. skip it when its allow-list does not permit the tool
    3. skip it when a required credential cannot be resolved
    4. run the tool on the executor for the server's kind; a success is
       returned immediately, a failure moves on to the next server

    When no server succeeds the result is an ALL_SERVERS_EXHAUSTED
    failure. Each server is tried at most once per call.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        root: str | Path,
        credential_resolver: Optional[CredentialResolver] = None,
        audit_logger: Optional[DispatchAuditLogger] = None,
        vcs_binary: str = "git"
    ) -> None:
        self.config_store = config_store
        self.root = Path(root).resolve()
        self.credential_resolver = credential_resolver or CredentialResolver()
        self.audit_logger = audit_logger
        self._factories: dict[ServerKind, ExecutorFactory] = default_factories(vcs_binary)

    def register_executor(self, kind: ServerKind, factory: ExecutorFactory) -> None:
        """
        Register the executor factory for a server kind.

        Args:
            kind: Server kind
            factory: Callable building an executor from (server, root)
        """
        self._factories[kind] = factory
        logger.info("Executor registered", kind=kind.value)

    def execute(self, tool_name: str, parameters: Optional[dict[str, Any]] = None) -> ToolResult:
        """
        Execute a tool on the first eligible server that succeeds.

        Args:
            tool_name: Requested tool name
            parameters: Tool parameters, passed through unmodified

        Returns:
            The first success, a configuration failure, or an
            ALL_SERVERS_EXHAUSTED failure
        """
        parameters = {} if parameters is None else parameters
        start_time = time.monotonic()

        with log_context(dispatch_id=str(uuid.uuid4()), tool=tool_name):
            attempts: list[DispatchAttempt] = []
            result = self._dispatch(tool_name, parameters, attempts)
            result.execution_time_ms = (time.monotonic() - start_time) * 1000

            if self.audit_logger is not None:
                self.audit_logger.log(tool_name, parameters, result, attempts)

        return result

    def execute_request(self, request: ToolRequest) -> ToolResult:
        """Execute a ToolRequest; see ``execute``."""
        return self.execute(request.tool_name, request.parameters)

    def _dispatch(
        self,
        tool_name: str,
        parameters: dict[str, Any],
        attempts: list[DispatchAttempt]
    ) -> ToolResult:
        try:
            servers = self.config_store.load()
        except ConfigError as e:
            code = (
                ToolErrorCode.CONFIG_MISSING
                if isinstance(e, ConfigNotFoundError)
                else ToolErrorCode.CONFIG_MALFORMED
            )
            logger.error("Configuration unavailable", kind=e.kind, error=str(e))
            return ToolResult.failure(tool_name, str(e), code)

        for server in servers:
            result = self._try_server(server, tool_name, parameters, attempts)
            if result is not None:
                return result

        return self._exhausted(tool_name, attempts)

    def _try_server(
        self,
        server: ServerConfig,
        tool_name: str,
        parameters: dict[str, Any],
        attempts: list[DispatchAttempt]
    ) -> Optional[ToolResult]:
        """Evaluate one server; return a result only on success."""
        if server.enabled is not True:
            attempts.append(DispatchAttempt(
                server=server.name, outcome=AttemptOutcome.SKIPPED_DISABLED
            ))
            return None

        allowed, reason = check_access(server, tool_name)
        if not allowed:
            logger.debug("Server denies tool", server=server.name, reason=reason)
            attempts.append(DispatchAttempt(
                server=server.name, outcome=AttemptOutcome.SKIPPED_DENIED, reason=reason
            ))
            return None

        resolution = self.credential_resolver.resolve(server)
        if resolution.missing:
            attempts.append(DispatchAttempt(
                server=server.name,
                outcome=AttemptOutcome.SKIPPED_MISSING_CREDENTIAL,
                reason=resolution.reason
            ))
            return None

        try:
            executor = create_executor(server, self.root, factories=self._factories)
            result = executor.run(tool_name, parameters, resolution.credential)
        except Exception as e:
            # Executors report failures as results; anything raised is a defect
            logger.error("Executor raised", server=server.name, error=str(e), exc_info=True)
            result = ToolResult.failure(tool_name, f"executor raised: {e}")

        if result.ok:
            logger.info("Tool executed", server=server.name, kind=server.kind.value)
            attempts.append(DispatchAttempt(server=server.name, outcome=AttemptOutcome.SUCCEEDED))
            result.server = server.name
            return result

        logger.warning(
            "Server failed, trying next",
            server=server.name,
            error_code=result.error_code.value if result.error_code else None,
            error=result.error
        )
        attempts.append(DispatchAttempt(
            server=server.name, outcome=AttemptOutcome.FAILED, reason=result.error
        ))
        return None

    def _exhausted(self, tool_name: str, attempts: list[DispatchAttempt]) -> ToolResult:
        message = f"No eligible server could satisfy tool '{tool_name}'"
        if attempts:
            message += ": " + "; ".join(a.describe() for a in attempts)
        else:
            message += ": no servers configured"

        logger.error("All servers exhausted", servers=len(attempts))
        return ToolResult.failure(tool_name, message, ToolErrorCode.ALL_SERVERS_EXHAUSTED)
