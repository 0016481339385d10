"""
Page fetch tool for browsing-enabled conversations.

Downloads a URL with ``httpx`` and reduces HTML to readable plain text with
BeautifulSoup. The tool callable (``FetchPageTool.fetch``) returns ``None``
when the page is unreachable, answers with a non-success status or has no
text; the orchestrator treats that as an unreachable candidate and asks the
model to pick another search result.

The same ``fetch`` is used to load the knowledge-priming page of a
conversation.
"""

from __future__ import annotations

import logging

import httpx
from bs4 import BeautifulSoup

from toolrelay.config import Settings
from toolrelay.conversation.browsing import FETCH_PAGE_TOOL_NAME
from toolrelay.conversation.tools.registry import ToolParameter, ToolSpecification
from toolrelay.errors import UnreachablePageError

logger = logging.getLogger(__name__)

_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; toolrelay/0.1; +https://pypi.org/project/toolrelay/)",
    "Accept": "text/html,application/xhtml+xml,text/plain;q=0.9,*/*;q=0.5",
}

_NON_CONTENT_TAGS = ["script", "style", "noscript", "template", "svg"]


def html_to_text(html: str) -> str:
    """Return the visible text of *html*, one block per line."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_NON_CONTENT_TAGS):
        tag.decompose()
    text = soup.get_text(separator="\n")
    lines = (line.strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


class FetchPageTool:
    """Fetches a web page and returns its text.

    Attributes:
        TOOL_DEFINITION: ``ToolSpecification`` for the built-in ``fetch_page`` tool.
        timeout: HTTP request timeout in seconds.
        max_chars: Text beyond this many characters is cut off.
    """

    TOOL_DEFINITION: ToolSpecification = ToolSpecification(
        name=FETCH_PAGE_TOOL_NAME,
        description=(
            "Fetch a web page and return its text content. Pass the link of "
            "one of the search results."
        ),
        parameters=(ToolParameter("url", description="Absolute URL of the page to read."),),
    )

    def __init__(
        self,
        timeout: float = 15.0,
        max_chars: int = 10000,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self.max_chars = max_chars
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> FetchPageTool:
        return cls(timeout=settings.request_timeout, max_chars=settings.page_max_chars)

    def get_text(self, url: str) -> str:
        """Fetch *url* and return its text.

        Raises:
            UnreachablePageError: On transport failure, non-success status or
                an empty page.
        """
        logger.debug("Fetching page: %s", url)
        try:
            with httpx.Client(
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
                headers=_HEADERS,
            ) as client:
                response = client.get(url)
        except httpx.HTTPError as exc:
            raise UnreachablePageError(url, str(exc)) from exc

        if not response.is_success:
            raise UnreachablePageError(url, f"status {response.status_code}")

        content_type = response.headers.get("content-type", "")
        if "html" in content_type or not content_type:
            text = html_to_text(response.text)
        else:
            text = response.text.strip()

        if not text:
            raise UnreachablePageError(url, "empty page")
        if len(text) > self.max_chars:
            logger.debug("Truncating %s from %d to %d chars", url, len(text), self.max_chars)
            text = text[: self.max_chars]
        return text

    def fetch(self, url: str | None) -> str | None:
        """Tool callable: page text, or ``None`` if the page is unreachable."""
        if not url:
            logger.warning("fetch_page called without a URL")
            return None
        try:
            return self.get_text(url)
        except UnreachablePageError as exc:
            logger.warning("%s", exc)
            return None
