"""Web search executor.

Queries a Brave-style web search API at ``GET {endpoint}/web/search``
and returns the ``web.results`` list when the response has one.
"""

from typing import Any, Optional

from pydantic import SecretStr

from shared.logging import get_logger
from shared.models import ToolDefinition, ToolErrorCode
from shared.schema import object_schema
from executors.base import Handler, HTTPExecutor, ToolExecutionError

logger = get_logger(__name__)

CREDENTIAL_HEADER = "X-Subscription-Token"

# Query parameters forwarded to the search API besides q
OPTIONAL_PARAMS = (
    "count",
    "offset",
    "country",
    "search_lang",
    "ui_lang",
    "safesearch",
    "freshness",
    "result_filter",
)


class SearchExecutor(HTTPExecutor):
    """Executor offering the single ``search`` tool."""

    kind = "search"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._tools["search"] = ToolDefinition(
            name="search",
            description="Search the web and return the matching results.",
            input_schema=object_schema(
                {
                    "query": {"type": "string", "pattern": r"\S"},
                    "count": {"type": "integer", "minimum": 1},
                    "offset": {"type": "integer", "minimum": 0},
                },
                required=["query"]
            )
        )

    def _handlers(self) -> dict[str, Handler]:
        return {"search": self._search}

    def _search(
        self,
        params: dict[str, Any],
        credential: Optional[SecretStr]
    ) -> Any:
        token = credential.get_secret_value().strip() if credential is not None else ""
        if not token:
            raise ToolExecutionError(
                "Search requires a credential", ToolErrorCode.MISSING_CREDENTIAL
            )
        endpoint = self._require_endpoint()

        query: dict[str, Any] = {"q": params["query"].strip()}
        for name in OPTIONAL_PARAMS:
            value = params.get(name)
            if value is None:
                continue
            query[name] = str(value).lower() if isinstance(value, bool) else value

        logger.debug("Web search", endpoint=endpoint, options=sorted(query))
        response = self._request(
            "GET",
            f"{endpoint}/web/search",
            params=query,
            headers={"Accept": "application/json", CREDENTIAL_HEADER: token},
        )
        body = self._json(response)

        web = body.get("web") if isinstance(body, dict) else None
        if isinstance(web, dict) and "results" in web:
            return web["results"]
        return body
