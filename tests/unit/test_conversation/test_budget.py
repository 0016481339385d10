"""Unit tests for toolrelay.conversation.budget.CallBudgetGuard."""

from __future__ import annotations

import pytest

from toolrelay.conversation.budget import CallBudgetGuard
from toolrelay.conversation.state import ConversationState
from toolrelay.errors import BudgetExceededError


def test_allows_until_ceiling() -> None:
    guard = CallBudgetGuard(ceiling=2)
    state = ConversationState(model="m")

    guard.check(state)
    guard.record(state)
    guard.check(state)
    guard.record(state)

    assert state.call_count == 2
    assert not guard.allows(state)
    with pytest.raises(BudgetExceededError) as excinfo:
        guard.check(state)
    assert excinfo.value.ceiling == 2


def test_check_does_not_increment() -> None:
    guard = CallBudgetGuard(ceiling=3)
    state = ConversationState(model="m")

    guard.check(state)
    guard.check(state)

    assert state.call_count == 0


def test_invalid_ceiling() -> None:
    with pytest.raises(ValueError):
        CallBudgetGuard(ceiling=0)
