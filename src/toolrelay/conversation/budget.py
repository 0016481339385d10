"""
Call budget guard for the orchestration loop.

Bounds the number of completion requests one ``run()`` may issue. The guard
is checked before every request and the counter is advanced only after a
request completes, so a run can never transmit more than ``ceiling``
requests even when the model keeps asking for tools.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from toolrelay.errors import BudgetExceededError

if TYPE_CHECKING:
    from toolrelay.conversation.state import ConversationState
    from toolrelay.conversation.transport import UsageStats

logger = logging.getLogger(__name__)


class CallBudgetGuard:
    """Tracks completion requests against a fixed ceiling.

    Attributes:
        ceiling: Maximum completion requests permitted per run.
    """

    def __init__(self, ceiling: int) -> None:
        if ceiling <= 0:
            raise ValueError("ceiling must be a positive integer.")
        self.ceiling = ceiling

    def allows(self, state: ConversationState) -> bool:
        """Return True if another request may be issued."""
        return state.call_count < self.ceiling

    def check(self, state: ConversationState) -> None:
        """Raise ``BudgetExceededError`` if another request would exceed the ceiling."""
        if not self.allows(state):
            logger.error(
                "Call ceiling reached (%d/%d); aborting run",
                state.call_count,
                self.ceiling,
            )
            raise BudgetExceededError(self.ceiling)

    def record(self, state: ConversationState, usage: UsageStats | None = None) -> None:
        """Count a completed request against the budget."""
        state.record_request(usage)
        logger.debug("Completion request %d/%d recorded", state.call_count, self.ceiling)
