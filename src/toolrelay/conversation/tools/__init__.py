"""
Tools for the toolrelay orchestration loop.

- ``ToolRegistry`` maps tool names to a ``ToolSpecification`` and a callable.
- ``SearchTool`` and ``FetchPageTool`` implement the built-in browsing tools
  (``search`` and ``fetch_page``).
"""

from toolrelay.conversation.tools.fetch_page import FetchPageTool, html_to_text
from toolrelay.conversation.tools.registry import (
    ToolCallResult,
    ToolFunction,
    ToolParameter,
    ToolRegistry,
    ToolSpecification,
)
from toolrelay.conversation.tools.search import SearchTool

__all__ = [
    "FetchPageTool",
    "SearchTool",
    "ToolCallResult",
    "ToolFunction",
    "ToolParameter",
    "ToolRegistry",
    "ToolSpecification",
    "html_to_text",
]
