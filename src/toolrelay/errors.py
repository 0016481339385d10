"""
Exception hierarchy for toolrelay.

Fatal conditions (configuration, transport, unknown tool, exhausted call
budget) propagate out of ``ConversationOrchestrator.run()`` to the caller.
``UnreachablePageError`` is recovered inside the loop by the browsing
sequencer and never reaches the caller.
"""

from __future__ import annotations


class ToolRelayError(Exception):
    """Base exception for all toolrelay errors."""


class ConfigurationError(ToolRelayError):
    """Raised when a required credential or setting is missing."""


class TransportError(ToolRelayError):
    """Raised when the completion endpoint cannot produce a response.

    Attributes:
        reason: Short human-readable description of the failure.
        status_code: Last HTTP status code seen, or ``None`` if the request
            never got a response (connection failure).
        body: Response body of the last failed attempt, if any.
        attempts: Number of attempts made before giving up.
    """

    def __init__(
        self,
        reason: str,
        status_code: int | None = None,
        body: str | None = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code
        self.body = body
        self.attempts = attempts


class UnknownToolError(ToolRelayError):
    """Raised when the model requests a tool that is not registered."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool {tool_name!r} is not registered.")
        self.tool_name = tool_name


class BudgetExceededError(ToolRelayError):
    """Raised before a completion request that would exceed the call ceiling."""

    def __init__(self, ceiling: int) -> None:
        super().__init__(
            f"Call ceiling of {ceiling} completion request(s) reached; "
            "the model kept requesting tools without converging."
        )
        self.ceiling = ceiling


class UnreachablePageError(ToolRelayError):
    """Raised when a page cannot be fetched or yields no content."""

    def __init__(self, url: str, reason: str = "no content") -> None:
        super().__init__(f"Could not fetch {url!r}: {reason}")
        self.url = url
        self.reason = reason
