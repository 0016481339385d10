"""
Conversation: caller-facing façade over the orchestrator.

Bundles one ``ConversationState`` with a ``ConversationOrchestrator`` and the
built-in browsing tools, so callers only deal with messages, tools and
``run()``::

    conversation = Conversation(settings=get_settings())
    conversation.add_system_message("You are a research assistant.")
    conversation.add_user_message("Who won the 2022 Tour de France?")
    conversation.enable_browsing()
    reply = conversation.run()
    print(reply.content)

History is kept in memory only and lives as long as the ``Conversation``.
"""

from __future__ import annotations

import logging
from typing import Any

from toolrelay.config import Settings, get_settings
from toolrelay.conversation.loop import (
    ConversationOrchestrator,
    FinalResult,
    RunOverrides,
)
from toolrelay.conversation.state import ConversationState, Message
from toolrelay.conversation.tools.fetch_page import FetchPageTool
from toolrelay.conversation.tools.registry import (
    ToolFunction,
    ToolParameter,
    ToolSpecification,
)
from toolrelay.conversation.tools.search import SearchTool
from toolrelay.conversation.transport import ResilientTransport

logger = logging.getLogger(__name__)


class Conversation:
    """One in-memory conversation with tool support.

    Args:
        settings: Configuration; loaded from the environment when omitted.
        transport: Completion transport; built from *settings* when omitted
            (which requires an API key).
        search_tool: Search implementation used by ``enable_browsing``;
            built from *settings* when omitted.
        fetch_tool: Page fetcher used for browsing and knowledge priming.
        model: Model identifier (defaults to ``settings.model``).
        temperature: Sampling temperature (defaults to ``settings.temperature``).
        max_tokens: Completion token limit (defaults to ``settings.max_tokens``).
        call_ceiling: Maximum requests per run (defaults to ``settings.call_ceiling``).

    Raises:
        ConfigurationError: If no transport is given and no API key is set.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: ResilientTransport | None = None,
        search_tool: SearchTool | None = None,
        fetch_tool: FetchPageTool | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        call_ceiling: int | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._search_tool = search_tool
        self._fetch_tool = fetch_tool or FetchPageTool.from_settings(self.settings)
        self.state = ConversationState(
            model=model or self.settings.model,
            temperature=(
                temperature if temperature is not None else self.settings.temperature
            ),
            max_tokens=(
                max_tokens if max_tokens is not None else self.settings.max_tokens
            ),
            call_ceiling=(
                call_ceiling
                if call_ceiling is not None
                else self.settings.call_ceiling
            ),
        )
        self._orchestrator = ConversationOrchestrator(
            transport or ResilientTransport.from_settings(self.settings),
            page_fetcher=self._fetch_tool.fetch,
        )

    # ------------------------------------------------------------------
    # Building the conversation
    # ------------------------------------------------------------------

    @property
    def messages(self) -> list[Message]:
        return self.state.messages

    @property
    def call_count(self) -> int:
        """Completion requests issued by the most recent run."""
        return self.state.call_count

    def add_system_message(self, content: str) -> Message:
        return self.state.add_system_message(content)

    def add_user_message(self, content: str) -> Message:
        return self.state.add_user_message(content)

    def add_tool(
        self,
        spec: ToolSpecification,
        func: ToolFunction | None = None,
    ) -> None:
        """Register a tool.

        *func* may be omitted for arguments-only tools, which are never
        executed.

        Raises:
            ValueError: If *func* is missing for an executable tool, or a tool
                with the same name is already registered.
        """
        if func is None:
            if not spec.arguments_only:
                raise ValueError(f"Tool {spec.name!r} needs an implementation.")
            func = _never_called
        self.state.registry.register(spec, func)

    def define_tool(
        self,
        name: str,
        description: str,
        parameters: list[ToolParameter] | None = None,
        func: ToolFunction | None = None,
        ends_conversation: bool = False,
        arguments_only: bool = False,
    ) -> ToolSpecification:
        """Build a ``ToolSpecification`` and register it in one step."""
        spec = ToolSpecification(
            name=name,
            description=description,
            parameters=tuple(parameters or ()),
            ends_conversation=ends_conversation,
            arguments_only=arguments_only,
        )
        self.add_tool(spec, func)
        return spec

    def remove_tool(self, name: str) -> ToolSpecification:
        """Unregister a caller-defined tool and return its specification.

        Raises:
            UnknownToolError: If no tool named *name* is registered.
            ValueError: If *name* is one of the built-in browsing tools while
                browsing is enabled.
        """
        if self.state.browsing.enabled and name in (
            SearchTool.TOOL_DEFINITION.name,
            FetchPageTool.TOOL_DEFINITION.name,
        ):
            raise ValueError(f"{name!r} is required while browsing is enabled.")
        return self.state.registry.deregister(name)

    def enable_browsing(self, search_only: bool = False) -> None:
        """Register the built-in ``search`` (and ``fetch_page``) tools.

        Raises:
            ConfigurationError: If no search tool was supplied and the search
                credentials are missing from the settings.
        """
        if self.state.browsing.enabled:
            logger.debug("Browsing already enabled")
            return
        if self._search_tool is None:
            self._search_tool = SearchTool.from_settings(self.settings)

        self.state.registry.register(SearchTool.TOOL_DEFINITION, self._search_tool.search)
        if not search_only:
            self.state.registry.register(FetchPageTool.TOOL_DEFINITION, self._fetch_tool.fetch)
        self.state.browsing.enable(search_only=search_only)
        logger.debug("Browsing enabled (search_only=%s)", search_only)

    def set_knowledge_url(self, url: str) -> None:
        """Inject *url*'s content as a system message before the next request."""
        self.state.set_knowledge_url(url)

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def run(
        self,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tool: str | None = None,
        call_ceiling: int | None = None,
    ) -> FinalResult:
        """Run the conversation until the model produces a final result.

        Returns:
            The final assistant ``Message``, or the argument mapping of an
            arguments-only tool.
        """
        overrides = RunOverrides(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            tool=tool,
            call_ceiling=call_ceiling,
        )
        return self._orchestrator.run(self.state, overrides)


def _never_called(*args: Any) -> None:
    raise RuntimeError("arguments-only tools are never executed")
