"""
Conversation state owned by a single orchestration run.

``ConversationState`` aggregates everything the orchestrator mutates: the
ordered message sequence, the tool registry, generation parameters, the
browsing sequencer and the per-run call counter. Messages are append-only;
the one exception is ``replace_content()``, used by the browsing sequencer to
drop an unreachable candidate from the latest search result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from toolrelay.conversation.browsing import BrowsingSequencer
from toolrelay.conversation.tools.registry import ToolRegistry
from toolrelay.conversation.transport import ToolCallRequest, UsageStats

logger = logging.getLogger(__name__)

SYSTEM = "system"
USER = "user"
ASSISTANT = "assistant"
TOOL = "tool"

ROLES = frozenset({SYSTEM, USER, ASSISTANT, TOOL})

DEFAULT_CALL_CEILING = 30


@dataclass
class Message:
    """One entry of the conversation.

    Attributes:
        role: ``"system"``, ``"user"``, ``"assistant"`` or ``"tool"``.
        content: Message text, if any.
        tool_calls: Tool invocations issued by an assistant message.
        tool_call_id: For ``"tool"`` messages, the call being answered.
        name: For ``"tool"`` messages, the tool that produced the content.
    """

    role: str
    content: str | None = None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown message role: {self.role!r}")

    def to_openai_format(self) -> dict[str, Any]:
        """Serialise to the chat-completion message format."""
        message: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [tc.to_openai_format() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            message["tool_call_id"] = self.tool_call_id
        return message


@dataclass
class ConversationState:
    """Mutable aggregate for one in-memory conversation.

    Attributes:
        model: Model identifier sent with every request.
        temperature: Sampling temperature.
        max_tokens: Completion token limit, or ``None`` for the endpoint default.
        call_ceiling: Maximum completion requests per run.
        call_count: Completion requests issued in the current run.
        knowledge_url: Page whose content is injected once as a system message.
        knowledge_pending: True until ``knowledge_url`` has been consumed.
        total_tokens: Running token usage across all runs.
    """

    model: str
    temperature: float = 0.7
    max_tokens: int | None = None
    call_ceiling: int = DEFAULT_CALL_CEILING
    messages: list[Message] = field(default_factory=list)
    registry: ToolRegistry = field(default_factory=ToolRegistry)
    browsing: BrowsingSequencer = field(default_factory=BrowsingSequencer)
    call_count: int = 0
    knowledge_url: str | None = None
    knowledge_pending: bool = False
    total_tokens: int = 0

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message(self, message: Message) -> Message:
        self.messages.append(message)
        return message

    def add_system_message(self, content: str) -> Message:
        return self.add_message(Message(role=SYSTEM, content=content))

    def add_user_message(self, content: str) -> Message:
        return self.add_message(Message(role=USER, content=content))

    def replace_content(self, index: int, content: str) -> None:
        """Rewrite the content of the tool-result message at *index*."""
        message = self.messages[index]
        if message.role != TOOL:
            raise ValueError("Only tool-result messages may be rewritten.")
        message.content = content

    def last_tool_result(self, name: str) -> tuple[int, Message] | None:
        """Return ``(index, message)`` of the newest tool result from *name*."""
        for index in range(len(self.messages) - 1, -1, -1):
            message = self.messages[index]
            if message.role == TOOL and message.name == name:
                return index, message
        return None

    def to_openai_messages(self) -> list[dict[str, Any]]:
        return [m.to_openai_format() for m in self.messages]

    # ------------------------------------------------------------------
    # Knowledge priming
    # ------------------------------------------------------------------

    def set_knowledge_url(self, url: str) -> None:
        self.knowledge_url = url
        self.knowledge_pending = True

    # ------------------------------------------------------------------
    # Accounting
    # ------------------------------------------------------------------

    def record_request(self, usage: UsageStats | None = None) -> None:
        """Count one completed completion request."""
        self.call_count += 1
        if usage is not None:
            self.total_tokens += usage.total_tokens
