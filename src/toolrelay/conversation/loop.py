"""
ConversationOrchestrator: the tool-calling control loop.

Each iteration builds a request from the conversation state, sends it through
the resilient transport (guarded by the call budget), and dispatches any tool
calls the model requests, feeding their results back as tool messages. The
loop ends when:

- the model answers without requesting a tool (the assistant message is
  returned);
- a tool flagged ``ends_conversation`` is called (the assistant message that
  issued the call is returned);
- a tool flagged ``arguments_only`` is called (its parsed arguments are
  returned, the tool is never executed);
- or the call budget is exhausted (``BudgetExceededError``).

The loop is an explicit ``while`` loop rather than recursion, so long
tool-calling chains do not grow the call stack.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Union

from toolrelay.conversation.arguments import parse_arguments
from toolrelay.conversation.browsing import FETCH_PAGE_TOOL_NAME, SEARCH_TOOL_NAME
from toolrelay.conversation.budget import CallBudgetGuard
from toolrelay.conversation.state import (
    ASSISTANT,
    TOOL,
    ConversationState,
    Message,
)
from toolrelay.conversation.tools.fetch_page import FetchPageTool
from toolrelay.conversation.transport import (
    CompletionResult,
    ResilientTransport,
    ToolCallRequest,
)
from toolrelay.errors import UnknownToolError

logger = logging.getLogger(__name__)

# Callable used to load the knowledge-priming page: url -> text or None.
PageFetcher = Callable[[str], Union[str, None]]

# Either the final assistant message or, for an arguments-only tool, the
# parsed arguments of the call.
FinalResult = Union[Message, dict[str, Any]]

END_SENTINEL = "[conversation ended by {name}]"
ARGUMENTS_SENTINEL = "[arguments returned by {name}]"

_KNOWLEDGE_TEMPLATE = (
    "Use the following content from {url} as reference knowledge when "
    "answering.\n\n{content}"
)


@dataclass
class RunOverrides:
    """Per-run overrides of the conversation's configuration.

    Attributes:
        model: Model identifier for this run.
        temperature: Sampling temperature for this run.
        max_tokens: Completion token limit for this run.
        tool: Name of a tool the model must call on the next free request.
        call_ceiling: Maximum completion requests for this run.
    """

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    tool: str | None = None
    call_ceiling: int | None = None


class ConversationOrchestrator:
    """Drives a ``ConversationState`` to a final result.

    Typical usage::

        transport = ResilientTransport.from_settings(settings)
        orchestrator = ConversationOrchestrator(transport)

        state = ConversationState(model="gpt-4o-mini")
        state.add_user_message("What is 2 + 2?")
        reply = orchestrator.run(state)

    Attributes:
        transport: The ``ResilientTransport`` used for completion requests.
        page_fetcher: Loads the knowledge-priming page.
    """

    def __init__(
        self,
        transport: ResilientTransport,
        page_fetcher: PageFetcher | None = None,
    ) -> None:
        self.transport = transport
        self.page_fetcher = page_fetcher or FetchPageTool().fetch

    def run(
        self,
        state: ConversationState,
        overrides: RunOverrides | None = None,
    ) -> FinalResult:
        """Run the tool-calling loop until a termination condition holds.

        Args:
            state: Conversation to advance. Mutated in place.
            overrides: Optional per-run configuration overrides.

        Returns:
            The final assistant ``Message``, or the argument mapping of an
            arguments-only tool call.

        Raises:
            TransportError: If the completion endpoint fails terminally.
            UnknownToolError: If the model (or the caller) names an
                unregistered tool.
            BudgetExceededError: If the call ceiling is reached.
            ValueError: If the effective call ceiling is not positive.
        """
        overrides = overrides or RunOverrides()
        if overrides.tool is not None and overrides.tool not in state.registry:
            raise UnknownToolError(overrides.tool)

        ceiling = (
            overrides.call_ceiling
            if overrides.call_ceiling is not None
            else state.call_ceiling
        )
        guard = CallBudgetGuard(ceiling)
        state.call_count = 0
        forced_tool = overrides.tool
        previous_mandated = False
        run_start = time.monotonic()

        while True:
            self._prime_knowledge(state)

            mandated = state.browsing.mandated_tool() if len(state.registry) else None
            tool_choice, forced_tool = self._resolve_tool_choice(
                state, mandated, forced_tool, previous_mandated
            )
            previous_mandated = mandated is not None
            payload = self._build_payload(state, overrides, tool_choice)

            guard.check(state)
            llm_t0 = time.monotonic()
            result = self.transport.send(payload)
            guard.record(state, result.usage)
            logger.debug(
                "Completion %d took %.3fs (finish_reason=%s, tool_calls=%d)",
                state.call_count,
                time.monotonic() - llm_t0,
                result.finish_reason,
                len(result.tool_calls),
            )

            if not result.tool_calls:
                message = state.add_message(Message(role=ASSISTANT, content=result.content))
                logger.info(
                    "Run complete after %d request(s) in %.3fs",
                    state.call_count,
                    time.monotonic() - run_start,
                )
                return message

            final = self._dispatch_tool_calls(state, result)
            if final is not None:
                logger.info(
                    "Run ended by tool after %d request(s) in %.3fs",
                    state.call_count,
                    time.monotonic() - run_start,
                )
                return final

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _prime_knowledge(self, state: ConversationState) -> None:
        if not state.knowledge_pending or not state.knowledge_url:
            return
        state.knowledge_pending = False

        content = self.page_fetcher(state.knowledge_url)
        if not content:
            logger.warning("Knowledge page %s yielded no content", state.knowledge_url)
            return
        state.add_system_message(
            _KNOWLEDGE_TEMPLATE.format(url=state.knowledge_url, content=content)
        )
        logger.debug("Injected knowledge from %s (%d chars)", state.knowledge_url, len(content))

    @staticmethod
    def _resolve_tool_choice(
        state: ConversationState,
        mandated: str | None,
        forced_tool: str | None,
        previous_mandated: bool,
    ) -> tuple[str | dict[str, Any] | None, str | None]:
        """Return ``(tool_choice, forced_tool_still_pending)``."""
        if not len(state.registry):
            return None, forced_tool
        if mandated is not None:
            return _named_choice(mandated), forced_tool
        if forced_tool is not None:
            if previous_mandated:
                logger.warning(
                    "Ignoring forced tool %r right after mandated browsing steps",
                    forced_tool,
                )
                return "auto", None
            return _named_choice(forced_tool), None
        return "auto", None

    @staticmethod
    def _build_payload(
        state: ConversationState,
        overrides: RunOverrides,
        tool_choice: str | dict[str, Any] | None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": overrides.model or state.model,
            "messages": state.to_openai_messages(),
            "temperature": (
                overrides.temperature
                if overrides.temperature is not None
                else state.temperature
            ),
        }
        max_tokens = (
            overrides.max_tokens if overrides.max_tokens is not None else state.max_tokens
        )
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if len(state.registry):
            payload["tools"] = [
                spec.to_openai_format() for spec in state.registry.get_definitions()
            ]
            payload["tool_choice"] = tool_choice

        logger.debug(
            "Request: model=%s, messages=%d, tools=%d, tool_choice=%s",
            payload["model"],
            len(payload["messages"]),
            len(payload.get("tools", [])),
            tool_choice,
        )
        return payload

    # ------------------------------------------------------------------
    # Tool dispatch
    # ------------------------------------------------------------------

    def _dispatch_tool_calls(
        self, state: ConversationState, result: CompletionResult
    ) -> FinalResult | None:
        """Process the tool calls of *result* in order.

        Every call that is recorded gets its own assistant message followed by
        the tool message answering it, so later requests never carry an
        unanswered tool call. A fetch that hit an unreachable search candidate
        is left out entirely; the remaining calls still run.

        Returns:
            The final result if a terminating tool fired, otherwise ``None``
            (the loop continues).
        """
        content = result.content
        for call in result.tool_calls:
            arguments = parse_arguments(call.arguments)
            if arguments is None:
                logger.warning(
                    "Unusable arguments for %s (%r); calling with none",
                    call.name,
                    call.arguments,
                )
                arguments = {}

            spec = state.registry.get(call.name)

            if spec.ends_conversation:
                output = self._execute(state, call, arguments)
                issuing = self._record_call(state, call, content, output)
                state.add_system_message(END_SENTINEL.format(name=spec.name))
                return issuing

            if spec.arguments_only:
                self._record_call(state, call, content, json.dumps(arguments))
                state.add_system_message(ARGUMENTS_SENTINEL.format(name=spec.name))
                return arguments

            output = self._execute(state, call, arguments)

            if call.name == FETCH_PAGE_TOOL_NAME and state.browsing.enabled and not output:
                url = arguments.get("url")
                if url and state.browsing.discard_candidate(state, url):
                    logger.debug("Skipping failed fetch of %s; model will choose again", url)
                    continue
                output = json.dumps({"error": f"Could not fetch {url!r}"})

            self._record_call(state, call, content, output)
            content = None

            if state.browsing.enabled:
                if call.name == SEARCH_TOOL_NAME:
                    state.browsing.record_search(output)
                elif call.name == FETCH_PAGE_TOOL_NAME:
                    state.browsing.record_fetch()
        return None

    @staticmethod
    def _record_call(
        state: ConversationState,
        call: ToolCallRequest,
        content: str | None,
        output: str,
    ) -> Message:
        """Append the assistant message issuing *call* and the tool answer."""
        issuing = state.add_message(
            Message(role=ASSISTANT, content=content, tool_calls=[call])
        )
        state.add_message(
            Message(role=TOOL, content=output, tool_call_id=call.id, name=call.name)
        )
        return issuing

    @staticmethod
    def _execute(
        state: ConversationState, call: ToolCallRequest, arguments: dict[str, Any]
    ) -> str:
        """Execute a tool; a failing tool yields a JSON error result."""
        try:
            return state.registry.execute(call.name, arguments).output
        except UnknownToolError:
            raise
        except Exception as exc:
            logger.error("Tool %r failed: %s", call.name, exc, exc_info=True)
            return json.dumps({"error": str(exc)})


def _named_choice(name: str) -> dict[str, Any]:
    return {"type": "function", "function": {"name": name}}
