"""Tool executors.

Four peer executors share the BaseExecutor contract:
- filesystem: local files below a root directory
- versionControl: git through fixed argument templates
- search: web search API
- generic: any remote tool server

Executors never raise across ``run``; failures come back as ToolResult.
"""

from pathlib import Path
from typing import Callable, Optional

from shared.models import ServerConfig, ServerKind
from executors.base import BaseExecutor, HTTPExecutor, ToolExecutionError
from executors.filesystem import LocalFilesystemExecutor
from executors.remote import RemoteHttpExecutor
from executors.search import SearchExecutor
from executors.vcs import LocalVersionControlExecutor

# Builds an executor for one server; receives the workspace root
ExecutorFactory = Callable[[ServerConfig, Path], BaseExecutor]


def default_factories(vcs_binary: str = "git") -> dict[ServerKind, ExecutorFactory]:
    """Factories for every server kind."""
    return {
        ServerKind.FILESYSTEM: lambda server, root: LocalFilesystemExecutor(root),
        ServerKind.VERSION_CONTROL: lambda server, root: LocalVersionControlExecutor(
            root, binary=vcs_binary, timeout=server.timeout_seconds
        ),
        ServerKind.SEARCH: lambda server, root: SearchExecutor(
            server.endpoint, timeout=server.timeout_seconds
        ),
        ServerKind.GENERIC: lambda server, root: RemoteHttpExecutor(
            server.endpoint, timeout=server.timeout_seconds
        ),
    }


def create_executor(
    server: ServerConfig,
    root: Path,
    vcs_binary: str = "git",
    factories: Optional[dict[ServerKind, ExecutorFactory]] = None
) -> BaseExecutor:
    """
    Create the executor matching a server's kind.

    Kinds without a factory use the generic one.
    """
    if factories is None:
        factories = default_factories(vcs_binary)
    return factories.get(server.kind, factories[ServerKind.GENERIC])(server, root)


__all__ = [
    "BaseExecutor",
    "ExecutorFactory",
    "HTTPExecutor",
    "LocalFilesystemExecutor",
    "LocalVersionControlExecutor",
    "RemoteHttpExecutor",
    "SearchExecutor",
    "ToolExecutionError",
    "create_executor",
    "default_factories",
]
