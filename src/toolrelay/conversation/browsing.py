"""
Browsing sequencer: forces search → fetch the first time browsing is used.

When browsing is enabled the first request must call ``search``. If the
search returns candidates the next request must call ``fetch_page``; after a
page has been fetched the model chooses freely. States::

    IDLE ──enable()──▶ AWAITING_SEARCH ──search (results)──▶ AWAITING_FETCH_CHOICE
                             │                                     │
                             └──search (empty)──▶ FREE ◀──fetch────┘

A fetch that yields no content does not advance the sequence. Instead
``discard_candidate()`` removes the failed URL from the newest search result
so the model picks again from the reduced list.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from toolrelay.conversation.state import ConversationState

logger = logging.getLogger(__name__)

SEARCH_TOOL_NAME = "search"
FETCH_PAGE_TOOL_NAME = "fetch_page"


class BrowsingState(str, Enum):
    IDLE = "idle"
    AWAITING_SEARCH = "awaiting_search"
    AWAITING_FETCH_CHOICE = "awaiting_fetch_choice"
    FREE = "free"


def parse_search_results(content: str | None) -> list[dict[str, Any]]:
    """Decode a search tool result into a list of candidates.

    Anything that is not a JSON list of objects counts as an empty result.
    """
    if not content:
        return []
    try:
        results = json.loads(content)
    except json.JSONDecodeError:
        return []
    if not isinstance(results, list):
        return []
    return [r for r in results if isinstance(r, dict)]


def candidate_url(candidate: dict[str, Any]) -> str | None:
    return candidate.get("link") or candidate.get("url")


class BrowsingSequencer:
    """State overlay over the built-in ``search`` and ``fetch_page`` tools.

    Attributes:
        state: Current ``BrowsingState``.
        search_only: When True only ``search`` is available and the sequence
            ends after the first search.
    """

    def __init__(self) -> None:
        self.state = BrowsingState.IDLE
        self.search_only = False

    @property
    def enabled(self) -> bool:
        return self.state is not BrowsingState.IDLE

    def enable(self, search_only: bool = False) -> None:
        self.search_only = search_only
        self._transition(BrowsingState.AWAITING_SEARCH)

    def mandated_tool(self) -> str | None:
        """Return the tool the next request must call, or ``None`` for free choice."""
        if self.state is BrowsingState.AWAITING_SEARCH:
            return SEARCH_TOOL_NAME
        if self.state is BrowsingState.AWAITING_FETCH_CHOICE:
            return FETCH_PAGE_TOOL_NAME
        return None

    def record_search(self, content: str) -> None:
        """Advance after a search tool result has been appended."""
        if not self.enabled:
            return
        if self.search_only or not parse_search_results(content):
            self._transition(BrowsingState.FREE)
        else:
            self._transition(BrowsingState.AWAITING_FETCH_CHOICE)

    def record_fetch(self) -> None:
        """Advance after a page has been fetched successfully."""
        if self.enabled:
            self._transition(BrowsingState.FREE)

    def discard_candidate(self, state: ConversationState, url: str) -> bool:
        """Remove *url* from the newest search result held in *state*.

        Returns:
            True if a candidate was removed (the caller should ask the model
            to choose again), False if *url* was not among the results.
        """
        found = state.last_tool_result(SEARCH_TOOL_NAME)
        if found is None:
            return False
        index, message = found

        results = parse_search_results(message.content)
        remaining = [r for r in results if candidate_url(r) != url]
        if len(remaining) == len(results):
            return False

        state.replace_content(index, json.dumps(remaining))
        logger.info(
            "Dropped unreachable page %s; %d candidate(s) left", url, len(remaining)
        )
        if not remaining:
            self._transition(BrowsingState.FREE)
        return True

    def _transition(self, new_state: BrowsingState) -> None:
        if new_state is not self.state:
            logger.debug("Browsing: %s -> %s", self.state.value, new_state.value)
        self.state = new_state
