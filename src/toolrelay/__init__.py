"""
toolrelay - a conversation orchestrator for tool-calling chat models.

Drives a multi-turn exchange with an OpenAI-compatible chat-completion
endpoint: the model may request tools, their results are fed back, and the
loop continues until the model answers, a terminating tool fires, or the call
budget runs out. Includes:

- Resilient transport with exponential backoff on transient failures
- Lenient recovery of malformed tool-call arguments
- Tool registry with conversation-ending and arguments-only tools
- Built-in web browsing (search, then fetch a page)

Quick Start:
    >>> from toolrelay import Conversation
    >>> conversation = Conversation()
    >>> conversation.add_user_message("What is the capital of Peru?")
    >>> reply = conversation.run()
    >>> print(reply.content)
"""

from toolrelay.config import Settings, get_settings
from toolrelay.conversation import (
    Conversation,
    ConversationOrchestrator,
    ConversationState,
    Message,
    RunOverrides,
    ToolParameter,
    ToolSpecification,
)
from toolrelay.errors import (
    BudgetExceededError,
    ConfigurationError,
    ToolRelayError,
    TransportError,
    UnknownToolError,
    UnreachablePageError,
)

__version__ = "0.1.0"
__all__ = [
    "BudgetExceededError",
    "ConfigurationError",
    "Conversation",
    "ConversationOrchestrator",
    "ConversationState",
    "Message",
    "RunOverrides",
    "Settings",
    "ToolParameter",
    "ToolRelayError",
    "ToolSpecification",
    "TransportError",
    "UnknownToolError",
    "UnreachablePageError",
    "get_settings",
]
