"""Generic remote executor.

Forwards any tool call to ``POST {endpoint}/tools/{tool}`` with the
parameters as JSON body and returns the parsed JSON response.
"""

import json
from functools import partial
from typing import Any, Optional
from urllib.parse import quote

from pydantic import SecretStr

from shared.logging import get_logger
from shared.models import ToolErrorCode
from executors.base import Handler, HTTPExecutor, ToolExecutionError

logger = get_logger(__name__)


class RemoteHttpExecutor(HTTPExecutor):
    """
    Executor for generic remote tool servers.

    Tool names are not known up front; every name is forwarded and
    the remote side decides whether it exists.
    """

    kind = "generic"

    def _handlers(self) -> dict[str, Handler]:
        return {}

    def _handler_for(self, tool_name: str) -> Optional[Handler]:
        if not tool_name:
            return None
        return partial(self._call_tool, tool_name)

    def _call_tool(
        self,
        tool_name: str,
        params: dict[str, Any],
        credential: Optional[SecretStr]
    ) -> Any:
        endpoint = self._require_endpoint()
        url = f"{endpoint}/tools/{quote(tool_name, safe='')}"

        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if credential is not None:
            headers["Authorization"] = f"Bearer {credential.get_secret_value()}"

        try:
            body = json.dumps(params)
        except (TypeError, ValueError) as e:
            raise ToolExecutionError(
                f"Parameters for '{tool_name}' cannot be serialized as JSON: {e}",
                ToolErrorCode.VALIDATION_ERROR
            ) from e

        logger.debug("Calling remote tool", tool=tool_name, endpoint=endpoint)
        response = self._request("POST", url, headers=headers, content=body)
        return self._json(response)
