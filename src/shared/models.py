"""Core data models for the tool dispatch engine.

This module defines the shared data structures passed between the
configuration store, access control, credential resolution, executors
and the dispatcher.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)

_ASCII_LOWER = str.maketrans(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz"
)


def ascii_lower(value: str) -> str:
    """Lower-case A-Z only; all other characters are left untouched."""
    return value.translate(_ASCII_LOWER)


class ServerKind(str, Enum):
    """Backend kind of a configured server - selects the executor."""
    FILESYSTEM = "filesystem"
    VERSION_CONTROL = "versionControl"
    SEARCH = "search"
    GENERIC = "generic"


class ServerConfig(BaseModel):
    """
    One configured tool backend.

    Built from the configuration document on every dispatch and never
    mutated afterwards. Document keys are camelCase.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str = Field(..., description="Server identifier used in diagnostics")
    kind: ServerKind = Field(default=ServerKind.GENERIC)
    enabled: bool = Field(default=False)
    endpoint: Optional[str] = Field(default=None, description="Base URL for remote kinds")
    credential_env_var: Optional[str] = Field(default=None, alias="credentialEnvVar")
    allowed_tools: Optional[list[str]] = Field(default=None, alias="allowedTools")
    timeout_seconds: float = Field(default=30, gt=0, alias="timeoutSeconds")

    @field_validator("kind", mode="before")
    @classmethod
    def _default_kind(cls, value: Any) -> ServerKind:
        # Unknown or missing kinds fall back to generic
        if isinstance(value, str):
            for kind in ServerKind:
                if value == kind.value:
                    return kind
        return ServerKind.GENERIC

    @field_validator("enabled", mode="before")
    @classmethod
    def _strict_enabled(cls, value: Any) -> bool:
        return value is True

    @field_validator("allowed_tools", mode="before")
    @classmethod
    def _tool_names(cls, value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, (list, tuple)):
            raise ValueError("allowedTools must be a list of tool names")
        return [str(item) for item in value]


class ToolRequest(BaseModel):
    """A request to execute a named tool."""
    tool_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class ToolResultStatus(str, Enum):
    """Status of tool execution."""
    SUCCESS = "success"
    ERROR = "error"


class ToolErrorCode(str, Enum):
    """Error taxonomy carried by failed results."""
    CONFIG_MISSING = "CONFIG_MISSING"
    CONFIG_MALFORMED = "CONFIG_MALFORMED"
    ALL_SERVERS_EXHAUSTED = "ALL_SERVERS_EXHAUSTED"
    LOCAL_TOOL_UNSUPPORTED = "LOCAL_TOOL_UNSUPPORTED"
    REMOTE_TRANSPORT = "REMOTE_TRANSPORT"
    REMOTE_NON_SUCCESS_STATUS = "REMOTE_NON_SUCCESS_STATUS"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PATH_OUTSIDE_ROOT = "PATH_OUTSIDE_ROOT"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    VCS_NOT_FOUND = "VCS_NOT_FOUND"
    VCS_COMMAND_FAILED = "VCS_COMMAND_FAILED"
    MISSING_CREDENTIAL = "MISSING_CREDENTIAL"
    MISSING_ENDPOINT = "MISSING_ENDPOINT"
    TIMEOUT = "TIMEOUT"
    EXECUTION_ERROR = "EXECUTION_ERROR"


class ToolResult(BaseModel):
    """
    Outcome of a tool execution.

    Exactly one case holds: a success carries ``data`` and no error,
    a failure carries an ``error`` message and no data.
    """
    tool_name: str
    status: ToolResultStatus
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[ToolErrorCode] = None
    server: Optional[str] = None
    execution_time_ms: float = 0

    @model_validator(mode="after")
    def _one_case(self) -> "ToolResult":
        if self.status == ToolResultStatus.SUCCESS:
            if self.error is not None or self.error_code is not None:
                raise ValueError("a successful result cannot carry an error")
        else:
            if not self.error:
                raise ValueError("a failed result needs an error message")
            if self.data is not None:
                raise ValueError("a failed result cannot carry data")
        return self

    @classmethod
    def success(cls, tool_name: str, data: Any = None, **kwargs: Any) -> "ToolResult":
        """Create a success result."""
        return cls(tool_name=tool_name, status=ToolResultStatus.SUCCESS, data=data, **kwargs)

    @classmethod
    def failure(
        cls,
        tool_name: str,
        error: str,
        code: ToolErrorCode = ToolErrorCode.EXECUTION_ERROR,
        **kwargs: Any
    ) -> "ToolResult":
        """Create a failure result."""
        return cls(
            tool_name=tool_name,
            status=ToolResultStatus.ERROR,
            error=error,
            error_code=code,
            **kwargs
        )

    @property
    def ok(self) -> bool:
        return self.status == ToolResultStatus.SUCCESS


class ToolDefinition(BaseModel):
    """Declaration of a tool offered by a local executor."""
    name: str
    description: str
    input_schema: dict[str, Any] = Field(
        default_factory=dict,
        description="JSON Schema for parameter validation"
    )


class CredentialResolution(BaseModel):
    """
    Result of resolving a server's credential.

    ``required`` is False when the server names no credential variable;
    a required credential that could not be resolved leaves
    ``credential`` empty and explains why in ``reason``.
    """
    required: bool = False
    credential: Optional[SecretStr] = None
    reason: Optional[str] = None

    @property
    def missing(self) -> bool:
        return self.required and self.credential is None


class AttemptOutcome(str, Enum):
    """What happened to one server during a dispatch."""
    SKIPPED_DISABLED = "skipped_disabled"
    SKIPPED_DENIED = "skipped_denied"
    SKIPPED_MISSING_CREDENTIAL = "skipped_missing_credential"
    FAILED = "failed"
    SUCCEEDED = "succeeded"


class DispatchAttempt(BaseModel):
    """Diagnostic record of one server's evaluation."""
    server: str
    outcome: AttemptOutcome
    reason: Optional[str] = None

    def describe(self) -> str:
        if self.reason:
            return f"{self.server}: {self.outcome.value} ({self.reason})"
        return f"{self.server}: {self.outcome.value}"
