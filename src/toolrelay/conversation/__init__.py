"""
toolrelay conversation package.

Implements the tool-calling orchestration loop and its collaborators: the
resilient transport, the argument recovery parser, the call budget guard, the
browsing sequencer and the ``Conversation`` façade.
"""

from toolrelay.conversation.arguments import parse_arguments
from toolrelay.conversation.browsing import BrowsingSequencer, BrowsingState
from toolrelay.conversation.budget import CallBudgetGuard
from toolrelay.conversation.loop import (
    ConversationOrchestrator,
    FinalResult,
    RunOverrides,
)
from toolrelay.conversation.session import Conversation
from toolrelay.conversation.state import ConversationState, Message
from toolrelay.conversation.tools.registry import (
    ToolCallResult,
    ToolParameter,
    ToolRegistry,
    ToolSpecification,
)
from toolrelay.conversation.transport import (
    CompletionResult,
    ResilientTransport,
    ToolCallRequest,
    UsageStats,
)

__all__ = [
    "BrowsingSequencer",
    "BrowsingState",
    "CallBudgetGuard",
    "CompletionResult",
    "Conversation",
    "ConversationOrchestrator",
    "ConversationState",
    "FinalResult",
    "Message",
    "ResilientTransport",
    "RunOverrides",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolParameter",
    "ToolRegistry",
    "ToolSpecification",
    "UsageStats",
    "parse_arguments",
]
