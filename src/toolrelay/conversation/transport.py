"""
Resilient transport to an OpenAI-compatible chat-completion endpoint.

``ResilientTransport.send()`` issues a single completion request and retries
it on transient failures (HTTP 429, 500, 503 and connection errors) with
exponential backoff. Any other non-success status is terminal and is raised
immediately as a ``TransportError``.

The SDK's own retry logic is disabled (``max_retries=0``) so that this module
is the only place where retries happen.

Also provides the value types produced by a completion:

- ``ToolCallRequest``: a tool invocation requested by the model, with its
  raw (possibly malformed) argument text.
- ``UsageStats``: token counts for one completion.
- ``CompletionResult``: the normalised assistant reply.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx
from openai import APIConnectionError, APIStatusError, OpenAI

from toolrelay.config import Settings
from toolrelay.errors import ConfigurationError, TransportError

logger = logging.getLogger(__name__)

# Status codes worth retrying: rate limited or server temporarily unavailable.
TRANSIENT_STATUS_CODES = frozenset({429, 500, 503})

DEFAULT_MAX_ATTEMPTS = 5


# ---------------------------------------------------------------------------
# Core data types
# ---------------------------------------------------------------------------


@dataclass
class ToolCallRequest:
    """A tool invocation requested by the model.

    Attributes:
        id: Call ID returned by the model (correlates the tool result).
        name: Name of the tool to invoke.
        arguments: Raw argument text. Expected to be a JSON object but not
            guaranteed to be valid; see ``toolrelay.conversation.arguments``.
    """

    id: str
    name: str
    arguments: str

    def to_openai_format(self) -> dict[str, Any]:
        """Serialise to the ``tool_calls`` entry of an assistant message."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class UsageStats:
    """Token usage recorded for a single completion call."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class CompletionResult:
    """Result of a single completion call.

    Attributes:
        finish_reason: ``"stop"``, ``"tool_calls"``, ``"length"`` etc.
        content: Visible assistant text, if any.
        tool_calls: Requested tool invocations in the order returned.
        usage: Token usage for this call, or ``None`` if unavailable.
    """

    finish_reason: str
    content: str | None = None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    usage: UsageStats | None = None

    @property
    def truncated(self) -> bool:
        """True when generation stopped because of the token limit."""
        return self.finish_reason == "length"


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class ResilientTransport:
    """Sends completion requests with retry and exponential backoff.

    Attributes:
        max_attempts: Total attempts per request (first try included).
        backoff_unit: Seconds per backoff unit; the delay after failed
            attempt ``n`` (0-based) is ``backoff_unit * 2**n``.
    """

    def __init__(
        self,
        client: OpenAI,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_unit: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be a positive integer.")
        self._client = client
        self.max_attempts = max_attempts
        self.backoff_unit = backoff_unit
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> ResilientTransport:
        """Build a transport backed by ``openai.OpenAI`` from *settings*.

        Raises:
            ConfigurationError: If no API key is configured.
        """
        if not settings.api_key:
            raise ConfigurationError(
                "No API key configured. Set TOOLRELAY_API_KEY or pass api_key."
            )
        client = OpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            timeout=settings.request_timeout,
            max_retries=0,
        )
        return cls(
            client,
            max_attempts=settings.max_attempts,
            backoff_unit=settings.backoff_unit,
        )

    def backoff_delay(self, attempt: int) -> float:
        """Return the delay to wait after failed attempt *attempt* (0-based)."""
        return self.backoff_unit * (2**attempt)

    def send(self, payload: dict[str, Any]) -> CompletionResult:
        """Send *payload* to the completion endpoint.

        Args:
            payload: Keyword arguments for ``chat.completions.create``
                (``model``, ``messages``, ``temperature`` and optionally
                ``max_tokens``, ``tools``, ``tool_choice``).

        Returns:
            The normalised ``CompletionResult``.

        Raises:
            TransportError: On a terminal status, or once ``max_attempts``
                transient failures have occurred.
        """
        last_status: int | None = None
        last_body: str | None = None

        for attempt in range(self.max_attempts):
            logger.debug(
                "Completion request attempt %d/%d: model=%s, messages=%d, tools=%d",
                attempt + 1,
                self.max_attempts,
                payload.get("model"),
                len(payload.get("messages", [])),
                len(payload.get("tools", [])),
            )
            try:
                response = self._client.chat.completions.create(**payload)
            except APIStatusError as exc:
                last_status = exc.status_code
                last_body = _response_body(exc)
                if last_status not in TRANSIENT_STATUS_CODES:
                    logger.error(
                        "Completion endpoint returned terminal status %d: %s",
                        last_status,
                        last_body,
                    )
                    raise TransportError(
                        f"Completion endpoint returned status {last_status}",
                        status_code=last_status,
                        body=last_body,
                        attempts=attempt + 1,
                    ) from exc
                reason = f"status {last_status}"
            except APIConnectionError as exc:
                last_status = None
                last_body = None
                reason = f"connection error ({exc})"
            else:
                result = _to_completion_result(response)
                if result.truncated:
                    logger.warning(
                        "Completion truncated by token limit (finish_reason=length)"
                    )
                return result

            if attempt + 1 < self.max_attempts:
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "Transient failure (%s) on attempt %d/%d; retrying in %.1fs",
                    reason,
                    attempt + 1,
                    self.max_attempts,
                    delay,
                )
                self._sleep(delay)

        raise TransportError(
            f"Gave up after {self.max_attempts} attempt(s); last failure: "
            f"{'status ' + str(last_status) if last_status else 'connection error'}",
            status_code=last_status,
            body=last_body,
            attempts=self.max_attempts,
        )


def _response_body(exc: APIStatusError) -> str | None:
    try:
        return exc.response.text
    except httpx.ResponseNotRead:
        return str(exc.body) if exc.body is not None else None


def _to_completion_result(response: Any) -> CompletionResult:
    """Normalise an SDK ``ChatCompletion`` into a ``CompletionResult``."""
    choice = response.choices[0]
    message = choice.message

    tool_calls: list[ToolCallRequest] = []
    for tc in message.tool_calls or []:
        function = getattr(tc, "function", None)
        if function is None:
            continue
        tool_calls.append(
            ToolCallRequest(
                id=tc.id,
                name=function.name,
                arguments=function.arguments or "",
            )
        )

    usage: UsageStats | None = None
    if getattr(response, "usage", None) is not None:
        usage = UsageStats(
            prompt_tokens=response.usage.prompt_tokens,
            completion_tokens=response.usage.completion_tokens,
            total_tokens=response.usage.total_tokens,
        )

    logger.debug(
        "Completion response: finish_reason=%s, tool_calls=%d, tokens=%s",
        choice.finish_reason,
        len(tool_calls),
        usage.total_tokens if usage else "n/a",
    )

    return CompletionResult(
        finish_reason=choice.finish_reason or "stop",
        content=message.content,
        tool_calls=tool_calls,
        usage=usage,
    )
