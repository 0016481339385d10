"""Unit tests for toolrelay.conversation.tools.fetch_page."""

from __future__ import annotations

import httpx
import pytest

from toolrelay.conversation.browsing import FETCH_PAGE_TOOL_NAME
from toolrelay.conversation.tools.fetch_page import FetchPageTool, html_to_text
from toolrelay.errors import UnreachablePageError

_HTML = """
<html>
  <head><title>Example</title><style>body { color: red; }</style></head>
  <body>
    <script>alert("hi");</script>
    <h1>Release notes</h1>
    <p>Version 2.0 adds   tool calling.</p>

    <noscript>Enable JavaScript</noscript>
  </body>
</html>
"""


def _tool(handler, max_chars: int = 10000) -> FetchPageTool:
    return FetchPageTool(max_chars=max_chars, transport=httpx.MockTransport(handler))


def test_tool_definition() -> None:
    spec = FetchPageTool.TOOL_DEFINITION
    assert spec.name == FETCH_PAGE_TOOL_NAME
    assert [p.name for p in spec.parameters] == ["url"]


def test_html_to_text_drops_scripts_and_blank_lines() -> None:
    text = html_to_text(_HTML)
    assert text.splitlines() == [
        "Example",
        "Release notes",
        "Version 2.0 adds   tool calling.",
    ]


class TestFetch:
    def test_html_page(self) -> None:
        tool = _tool(
            lambda request: httpx.Response(
                200, text=_HTML, headers={"content-type": "text/html; charset=utf-8"}
            )
        )
        text = tool.fetch("https://example.com/notes")
        assert "Release notes" in text
        assert "alert" not in text

    def test_plain_text_page(self) -> None:
        tool = _tool(
            lambda request: httpx.Response(
                200, text="  just text  ", headers={"content-type": "text/plain"}
            )
        )
        assert tool.fetch("https://example.com/a.txt") == "just text"

    def test_truncates_long_pages(self) -> None:
        tool = _tool(
            lambda request: httpx.Response(
                200, text="x" * 50, headers={"content-type": "text/plain"}
            ),
            max_chars=10,
        )
        assert tool.fetch("https://example.com/long") == "x" * 10

    def test_non_success_status_is_none(self) -> None:
        tool = _tool(lambda request: httpx.Response(404, text="Not found"))
        assert tool.fetch("https://example.com/missing") is None

    def test_empty_page_is_none(self) -> None:
        tool = _tool(
            lambda request: httpx.Response(
                200, text="<html><body><script>x()</script></body></html>",
                headers={"content-type": "text/html"},
            )
        )
        assert tool.fetch("https://example.com/blank") is None

    def test_connection_error_is_none(self) -> None:
        def _fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        assert _tool(_fail).fetch("https://down.example") is None

    def test_missing_url_is_none(self) -> None:
        assert _tool(lambda request: httpx.Response(200)).fetch(None) is None

    def test_get_text_raises_unreachable(self) -> None:
        tool = _tool(lambda request: httpx.Response(503))
        with pytest.raises(UnreachablePageError) as excinfo:
            tool.get_text("https://example.com/busy")
        assert excinfo.value.url == "https://example.com/busy"
        assert "503" in str(excinfo.value)

    def test_follows_redirects(self) -> None:
        def _handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(301, headers={"location": "https://example.com/new"})
            return httpx.Response(200, text="moved here", headers={"content-type": "text/plain"})

        assert _tool(_handler).fetch("https://example.com/old") == "moved here"
