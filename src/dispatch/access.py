"""Access control for tool requests.

A server's ``allowedTools`` list is the only grant. Missing or empty
lists deny everything. Names are compared ASCII case-insensitively so
the outcome never depends on locale or Unicode case folding.
"""

from typing import Optional

from shared.models import ServerConfig, ascii_lower


def check_access(
    server: Optional[ServerConfig],
    tool_name: str
) -> tuple[bool, Optional[str]]:
    """
    Check whether a server permits a tool.

    Args:
        server: Server configuration
        tool_name: Requested tool name

    Returns:
        Tuple of (is_allowed, reason when denied)
    """
    if not tool_name:
        return False, "empty tool name"

    if server is None:
        return False, "no server"

    if server.allowed_tools is None:
        return False, "no allowedTools configured"
    if len(server.allowed_tools) == 0:
        return False, "allowedTools is empty"

    wanted = ascii_lower(tool_name)
    if any(ascii_lower(allowed) == wanted for allowed in server.allowed_tools):
        return True, None

    return False, f"tool '{tool_name}' is not in allowedTools"


def is_allowed(server: Optional[ServerConfig], tool_name: str) -> bool:
    """Return True iff the server permits the tool."""
    allowed, _ = check_access(server, tool_name)
    return allowed
