"""
Web search tool for browsing-enabled conversations.

Uses the Google Programmable Search JSON API
(``https://www.googleapis.com/customsearch/v1``), which needs an API key and a
search engine ID (``cx``).

The ``SearchTool`` class exposes:

- ``SearchTool.TOOL_DEFINITION``: the ``ToolSpecification`` registered as
  the built-in ``search`` tool.
- ``SearchTool.get_results(query)``: returns the candidate list, raising on
  HTTP failure.
- ``SearchTool.search(query)``: the tool callable: a JSON list of
  ``{"title", "link", "snippet"}`` objects, ``"[]"`` on any failure.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from toolrelay.config import Settings
from toolrelay.conversation.browsing import SEARCH_TOOL_NAME
from toolrelay.conversation.tools.registry import ToolParameter, ToolSpecification
from toolrelay.errors import ConfigurationError

logger = logging.getLogger(__name__)

_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"


class SearchTool:
    """Searches the web and returns candidate pages.

    Attributes:
        TOOL_DEFINITION: ``ToolSpecification`` for the built-in ``search`` tool.
        num_results: Maximum candidates per query (the API caps this at 10).
        timeout: HTTP request timeout in seconds.
    """

    TOOL_DEFINITION: ToolSpecification = ToolSpecification(
        name=SEARCH_TOOL_NAME,
        description=(
            "Search the web. Returns a JSON list of results, each with a "
            "title, link and snippet. Use fetch_page to read a result."
        ),
        parameters=(
            ToolParameter(
                "query",
                description="Search query, phrased as you would type it into a search engine.",
            ),
        ),
    )

    def __init__(
        self,
        api_key: str,
        engine_id: str,
        num_results: int = 5,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.engine_id = engine_id
        self.num_results = max(1, min(num_results, 10))
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> SearchTool:
        """Build a search tool from *settings*.

        Raises:
            ConfigurationError: If the search API key or engine ID is missing.
        """
        if not settings.browsing_configured:
            raise ConfigurationError(
                "Browsing requires TOOLRELAY_SEARCH_API_KEY and "
                "TOOLRELAY_SEARCH_ENGINE_ID."
            )
        return cls(
            api_key=settings.search_api_key,
            engine_id=settings.search_engine_id,
            num_results=settings.search_results,
            timeout=settings.request_timeout,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_results(self, query: str) -> list[dict[str, Any]]:
        """Run *query* and return the candidate list.

        Raises:
            httpx.HTTPStatusError: If the API returns a non-2xx status.
            httpx.HTTPError: On transport failures (timeouts, DNS, ...).
        """
        logger.debug("Searching: %r", query)
        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            response = client.get(
                _SEARCH_URL,
                params={
                    "key": self.api_key,
                    "cx": self.engine_id,
                    "q": query,
                    "num": self.num_results,
                },
            )
            response.raise_for_status()
            data = response.json()

        results = [
            {
                "title": item.get("title", ""),
                "link": item.get("link", ""),
                "snippet": item.get("snippet", ""),
            }
            for item in data.get("items") or []
            if item.get("link")
        ]
        logger.debug("Search %r returned %d result(s)", query, len(results))
        return results

    def search(self, query: str | None) -> str:
        """Tool callable: JSON-encoded results for *query*."""
        if not query:
            logger.warning("Search called without a query")
            return "[]"
        try:
            results = self.get_results(query)
        except httpx.HTTPStatusError as exc:
            logger.error("Search API HTTP error: %s", exc.response.status_code)
            return "[]"
        except httpx.HTTPError as exc:
            logger.error("Search API request failed for %r: %s", query, exc)
            return "[]"
        return json.dumps(results)
