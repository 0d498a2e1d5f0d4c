"""Local version-control executor.

Runs git through a fixed table of argument templates. Caller
parameters only ever fill documented slots of a template; they are
passed as discrete argv entries and never reach a shell.
"""

import os
import shutil
import subprocess
from pathlib import Path
from typing import Any, Optional

from pydantic import SecretStr

from shared.logging import get_logger
from shared.models import ToolDefinition, ToolErrorCode
from shared.schema import object_schema
from executors.base import BaseExecutor, Handler, ToolExecutionError

logger = get_logger(__name__)

DEFAULT_LOG_COUNT = 10
MAX_LOG_COUNT = 1000


class LocalVersionControlExecutor(BaseExecutor):
    """
    Version-control tools backed by the git binary.

    The binary is looked up on PATH at call time; the working
    directory is the root handed to the constructor.
    """

    kind = "versionControl"

    def __init__(
        self,
        root: str | Path,
        binary: str = "git",
        timeout: float = 30
    ) -> None:
        super().__init__()
        self.root = Path(root).resolve()
        self.binary = binary
        self.timeout = timeout
        self._define_tools()

    def _define_tools(self) -> None:
        """Define all version-control tools."""
        remote_schema = object_schema({"remote": "string", "branch": "string"})

        self._tools["status"] = ToolDefinition(
            name="status",
            description="Show the working tree status.",
            input_schema=object_schema({})
        )
        self._tools["add"] = ToolDefinition(
            name="add",
            description="Stage paths for commit (defaults to everything).",
            input_schema=object_schema({
                "paths": {"type": "array", "items": {"type": "string", "minLength": 1}},
            })
        )
        self._tools["commit"] = ToolDefinition(
            name="commit",
            description="Record staged changes with a message.",
            input_schema=object_schema(
                {"message": {"type": "string", "minLength": 1}},
                required=["message"]
            )
        )
        self._tools["push"] = ToolDefinition(
            name="push",
            description="Push to a remote, optionally naming the branch.",
            input_schema=remote_schema
        )
        self._tools["pull"] = ToolDefinition(
            name="pull",
            description="Pull from a remote, optionally naming the branch.",
            input_schema=remote_schema
        )
        self._tools["log"] = ToolDefinition(
            name="log",
            description=f"Show recent commits, one per line ({DEFAULT_LOG_COUNT} by default).",
            input_schema=object_schema({
                "count": {"type": "integer", "minimum": 1, "maximum": MAX_LOG_COUNT},
            })
        )
        self._tools["diff"] = ToolDefinition(
            name="diff",
            description="Show unstaged changes, or staged ones when staged is true.",
            input_schema=object_schema({"path": "string", "staged": "bool"})
        )
        self._tools["clone"] = ToolDefinition(
            name="clone",
            description="Clone a repository into the root or a directory below it.",
            input_schema=object_schema(
                {"url": {"type": "string", "minLength": 1}, "directory": "string"},
                required=["url"]
            )
        )

    def _handlers(self) -> dict[str, Handler]:
        return {
            name: self._make_handler(name)
            for name in ("status", "add", "commit", "push", "pull", "log", "diff", "clone")
        }

    def _make_handler(self, tool_name: str) -> Handler:
        def handler(params: dict[str, Any], credential: Optional[SecretStr]) -> str:
            return self._run_git(self.build_args(tool_name, params))
        return handler

    def build_args(self, tool_name: str, params: dict[str, Any]) -> list[str]:
        """
        Fill the argument template for a tool.

        Args:
            tool_name: One of the supported tool names
            params: Validated tool parameters

        Returns:
            git arguments, without the binary itself
        """
        if tool_name == "status":
            return ["status", "--short", "--branch"]

        if tool_name == "add":
            paths = params.get("paths") or ["."]
            return ["add", "--", *(self._inside_root(p) for p in paths)]

        if tool_name == "commit":
            return ["commit", "-m", params["message"]]

        if tool_name in ("push", "pull"):
            args = [tool_name]
            remote = params.get("remote")
            branch = params.get("branch")
            if branch and not remote:
                raise ToolExecutionError(
                    "branch requires remote", ToolErrorCode.VALIDATION_ERROR
                )
            if remote:
                args.append(_positional("remote", remote))
            if branch:
                args.append(_positional("branch", branch))
            return args

        if tool_name == "log":
            count = params.get("count", DEFAULT_LOG_COUNT)
            return ["log", "--oneline", "-n", str(count)]

        if tool_name == "diff":
            args = ["diff"]
            if params.get("staged"):
                args.append("--cached")
            if params.get("path"):
                args.extend(["--", self._inside_root(params["path"])])
            return args

        if tool_name == "clone":
            args = ["clone", "--", _positional("url", params["url"])]
            if params.get("directory"):
                args.append(self._inside_root(params["directory"]))
            return args

        raise ToolExecutionError(
            f"Unsupported tool '{tool_name}'", ToolErrorCode.LOCAL_TOOL_UNSUPPORTED
        )

    def _inside_root(self, path: str) -> str:
        candidate = (self.root / path).resolve()
        if not candidate.is_relative_to(self.root):
            raise ToolExecutionError(
                f"Path '{path}' resolves outside the repository root",
                ToolErrorCode.PATH_OUTSIDE_ROOT
            )
        return path

    def _run_git(self, args: list[str]) -> str:
        executable = shutil.which(self.binary)
        if executable is None:
            raise ToolExecutionError(
                f"Version-control binary '{self.binary}' was not found on PATH",
                ToolErrorCode.VCS_NOT_FOUND
            )

        argv = [executable, *args]
        logger.debug("Running command", command=args[0], cwd=str(self.root))

        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"

        try:
            proc = subprocess.run(
                argv,
                cwd=self.root,
                env=env,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ToolExecutionError(
                f"'{self.binary} {args[0]}' timed out after {self.timeout}s",
                ToolErrorCode.TIMEOUT
            ) from e

        output = _combine(proc.stdout, proc.stderr)
        if proc.returncode != 0:
            raise ToolExecutionError(
                f"'{self.binary} {args[0]}' exited with code {proc.returncode}: {output}",
                ToolErrorCode.VCS_COMMAND_FAILED
            )
        return output


def _positional(name: str, value: str) -> str:
    # A leading dash would be parsed as an option
    if value.startswith("-"):
        raise ToolExecutionError(
            f"{name} must not start with '-'", ToolErrorCode.VALIDATION_ERROR
        )
    return value


def _combine(stdout: Optional[str], stderr: Optional[str]) -> str:
    parts = [p.strip() for p in (stdout, stderr) if p and p.strip()]
    return "\n".join(parts)
