"""Base classes for tool executors.

All executors:
- Share one contract: run(tool_name, parameters, credential) -> ToolResult
- Never raise across that boundary; every failure becomes a ToolResult
- Receive their root directory, endpoint and timeout explicitly
- Hold no state between invocations
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import httpx
from pydantic import SecretStr

from shared.logging import get_logger
from shared.models import ToolDefinition, ToolErrorCode, ToolResult, ascii_lower
from shared.schema import validate_schema

logger = get_logger(__name__)

Handler = Callable[[dict[str, Any], Optional[SecretStr]], Any]


class ToolExecutionError(Exception):
    """A handler failure with a specific error code."""

    def __init__(self, message: str, code: ToolErrorCode = ToolErrorCode.EXECUTION_ERROR) -> None:
        super().__init__(message)
        self.code = code


class BaseExecutor(ABC):
    """
    Base class for executors.

    Subclasses declare their tools and map tool names to handler
    methods. Handlers return the success payload or raise
    ToolExecutionError; ``run`` turns both into a ToolResult.
    """

    kind: str = "base"

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}

    def get_tool(self, name: str) -> Optional[ToolDefinition]:
        """Get a tool definition by name."""
        return self._tools.get(name)

    @abstractmethod
    def _handlers(self) -> dict[str, Handler]:
        """Map of supported tool names to handlers."""

    def _handler_for(self, tool_name: str) -> Optional[Handler]:
        # Tool names match ASCII case-insensitively, as in access control
        wanted = ascii_lower(tool_name)
        for name, handler in self._handlers().items():
            if ascii_lower(name) == wanted:
                return handler
        return None

    def canonical_name(self, tool_name: str) -> str:
        """Declared spelling of a tool name, or the name unchanged."""
        wanted = ascii_lower(tool_name)
        for name in self._tools:
            if ascii_lower(name) == wanted:
                return name
        return tool_name

    def run(
        self,
        tool_name: str,
        parameters: dict[str, Any],
        credential: Optional[SecretStr] = None
    ) -> ToolResult:
        """
        Execute a tool.

        Args:
            tool_name: Tool name as requested by the caller
            parameters: Tool parameters
            credential: Resolved credential, if the server requires one

        Returns:
            Tool execution result
        """
        handler = self._handler_for(tool_name)
        if handler is None:
            return self._unsupported(tool_name)

        tool = self.get_tool(self.canonical_name(tool_name))
        if tool is not None:
            is_valid, errors = validate_schema(parameters, tool.input_schema)
            if not is_valid:
                return self._error(
                    tool_name,
                    f"Invalid parameters for '{tool_name}': {'; '.join(errors)}",
                    ToolErrorCode.VALIDATION_ERROR
                )

        try:
            data = handler(parameters, credential)
        except ToolExecutionError as e:
            logger.debug("Tool failed", executor=self.kind, tool=tool_name, error=str(e))
            return self._error(tool_name, str(e), e.code)
        except Exception as e:
            logger.error("Tool raised", executor=self.kind, tool=tool_name, error=str(e))
            return self._error(tool_name, str(e) or type(e).__name__)

        return self._success(tool_name, data)

    def _success(self, tool_name: str, data: Any = None) -> ToolResult:
        """Create a success result."""
        return ToolResult.success(tool_name, data)

    def _error(
        self,
        tool_name: str,
        message: str,
        code: ToolErrorCode = ToolErrorCode.EXECUTION_ERROR
    ) -> ToolResult:
        """Create an error result."""
        return ToolResult.failure(tool_name, message, code)

    def _unsupported(self, tool_name: str) -> ToolResult:
        """Create an unsupported-tool result."""
        return ToolResult.failure(
            tool_name,
            f"Unsupported tool '{tool_name}' for {self.kind} executor",
            ToolErrorCode.LOCAL_TOOL_UNSUPPORTED
        )


class HTTPExecutor(BaseExecutor):
    """
    Base executor for HTTP backends.

    Provides a short-lived httpx client per call and converts transport
    errors and non-2xx responses into ToolExecutionError.
    """

    # Characters of a failed response body kept in the error message
    ERROR_BODY_LIMIT = 500

    def __init__(
        self,
        endpoint: Optional[str],
        timeout: float = 30,
        transport: Optional[httpx.BaseTransport] = None
    ) -> None:
        super().__init__()
        self.endpoint = (endpoint or "").strip().rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _require_endpoint(self) -> str:
        if not self.endpoint:
            raise ToolExecutionError(
                f"{self.kind} server has no endpoint configured",
                ToolErrorCode.MISSING_ENDPOINT
            )
        return self.endpoint

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request and return the response if it is 2xx.

        ``timeout`` bounds the whole call, body included, not only each
        connect or read step.
        """
        deadline = time.monotonic() + self.timeout
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                with client.stream(method, url, **kwargs) as streamed:
                    body = bytearray()
                    for chunk in streamed.iter_bytes():
                        body.extend(chunk)
                        if time.monotonic() > deadline:
                            raise ToolExecutionError(
                                f"Request to {url} exceeded {self.timeout}s",
                                ToolErrorCode.TIMEOUT
                            )
                    response = _buffered(streamed, bytes(body))
        except httpx.TimeoutException as e:
            raise ToolExecutionError(
                f"Request to {url} timed out after {self.timeout}s: {e}",
                ToolErrorCode.TIMEOUT
            ) from e
        except httpx.HTTPError as e:
            raise ToolExecutionError(
                f"Request to {url} failed: {e}",
                ToolErrorCode.REMOTE_TRANSPORT
            ) from e

        if not response.is_success:
            raise ToolExecutionError(
                f"{method} {url} returned HTTP {response.status_code}: {self._body_excerpt(response)}",
                ToolErrorCode.REMOTE_NON_SUCCESS_STATUS
            )
        return response

    def _body_excerpt(self, response: httpx.Response) -> str:
        try:
            text = response.text
        except Exception:  # noqa: BLE001
            return "<unreadable body>"
        if len(text) > self.ERROR_BODY_LIMIT:
            return text[:self.ERROR_BODY_LIMIT] + "...[truncated]"
        return text or "<empty body>"

    def _json(self, response: httpx.Response) -> Any:
        """Parse a JSON body; an empty body parses to None."""
        if not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ToolExecutionError(
                f"Response from {response.request.url} is not valid JSON: {e}",
                ToolErrorCode.INVALID_RESPONSE
            ) from e


def _buffered(streamed: httpx.Response, body: bytes) -> httpx.Response:
    """Rebuild a streamed response around its already decoded body."""
    headers = [
        (name, value)
        for name, value in streamed.headers.multi_items()
        if name.lower() not in ("content-encoding", "content-length", "transfer-encoding")
    ]
    return httpx.Response(
        streamed.status_code,
        headers=headers,
        content=body,
        request=streamed.request,
    )
