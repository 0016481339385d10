"""
Tool registry for the toolrelay orchestration loop.

Provides ``ToolSpecification`` (the declared contract of a tool),
``ToolParameter`` (one entry of its ordered parameter list) and
``ToolRegistry``, which maps tool names to their specification and the plain
Python callable that implements them.

Tool callables receive their arguments positionally, in the order the
parameters were declared; missing arguments are passed as ``None``.

Typical usage::

    from toolrelay.conversation.tools.registry import (
        ToolParameter,
        ToolRegistry,
        ToolSpecification,
    )

    registry = ToolRegistry()
    registry.register(
        ToolSpecification(
            name="get_weather",
            description="Get current weather for a city.",
            parameters=(ToolParameter("city", description="City name"),),
        ),
        get_weather,
    )
    result = registry.execute("get_weather", {"city": "Leeds"})
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from toolrelay.errors import UnknownToolError

logger = logging.getLogger(__name__)

# Callable implementing a tool: positional args in declared parameter order.
ToolFunction = Callable[..., Any]

PRIMITIVE_TYPES = frozenset({"string", "number", "integer", "boolean"})


@dataclass(frozen=True)
class ToolParameter:
    """One declared parameter of a tool.

    Attributes:
        name: Argument name as seen by the model.
        type: JSON primitive type (``string``, ``number``, ``integer``,
            ``boolean``). For array parameters this is the item type.
        description: Human-readable description shown to the model.
        required: Whether the model must supply the argument.
        array: True for an array of ``type`` values.
    """

    name: str
    type: str = "string"
    description: str = ""
    required: bool = True
    array: bool = False

    def __post_init__(self) -> None:
        if self.type not in PRIMITIVE_TYPES:
            raise ValueError(
                f"Parameter {self.name!r} has unsupported type {self.type!r}; "
                f"expected one of {sorted(PRIMITIVE_TYPES)}."
            )

    def to_json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any]
        if self.array:
            schema = {"type": "array", "items": {"type": self.type}}
        else:
            schema = {"type": self.type}
        if self.description:
            schema["description"] = self.description
        return schema


@dataclass(frozen=True)
class ToolSpecification:
    """Immutable contract of a tool the model may call.

    Attributes:
        name: Unique tool name.
        description: Human-readable description shown to the model.
        parameters: Ordered parameter declarations.
        ends_conversation: The tool's execution ends the run; ``run()``
            returns the assistant message that issued the call.
        arguments_only: The tool is never executed; ``run()`` returns the
            parsed arguments of the call.
    """

    name: str
    description: str
    parameters: tuple[ToolParameter, ...] = field(default_factory=tuple)
    ends_conversation: bool = False
    arguments_only: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Tool name must not be empty.")
        if self.ends_conversation and self.arguments_only:
            raise ValueError(
                f"Tool {self.name!r} cannot both end the conversation and "
                "return arguments only."
            )
        object.__setattr__(self, "parameters", tuple(self.parameters))
        names = [p.name for p in self.parameters]
        if len(names) != len(set(names)):
            raise ValueError(f"Tool {self.name!r} declares duplicate parameters.")

    def to_openai_format(self) -> dict[str, Any]:
        """Serialise to the chat-completion tool definition format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {p.name: p.to_json_schema() for p in self.parameters},
                    "required": [p.name for p in self.parameters if p.required],
                },
            },
        }

    def order_arguments(self, arguments: Mapping[str, Any] | None) -> list[Any]:
        """Return argument values in declared parameter order (``None`` if absent)."""
        arguments = arguments or {}
        return [arguments.get(p.name) for p in self.parameters]


@dataclass
class ToolCallResult:
    """Outcome of executing one tool call.

    Attributes:
        name: Tool name.
        arguments: Argument values in declared order, as passed to the tool.
        output: Tool output coerced to text.
    """

    name: str
    arguments: list[Any]
    output: str


def coerce_output(value: Any) -> str:
    """Coerce a tool's return value to the text fed back to the model."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


class ToolRegistry:
    """Registry mapping tool names to their specification and callable.

    Insertion order is preserved and is the order in which specifications
    are sent to the model.
    """

    def __init__(self) -> None:
        self._tools: dict[str, tuple[ToolSpecification, ToolFunction]] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, spec: ToolSpecification, func: ToolFunction) -> None:
        """Register *func* as the implementation of *spec*.

        Raises:
            ValueError: If a tool with the same name is already registered.
        """
        if spec.name in self._tools:
            raise ValueError(
                f"Tool {spec.name!r} is already registered. "
                "Remove it before registering a replacement."
            )
        self._tools[spec.name] = (spec, func)
        logger.debug("Registered tool: %r", spec.name)

    def deregister(self, name: str) -> ToolSpecification:
        """Remove *name* and return its specification.

        Raises:
            UnknownToolError: If *name* is not registered.
        """
        entry = self._tools.pop(name, None)
        if entry is None:
            raise UnknownToolError(name)
        logger.debug("Removed tool %r (%d left)", name, len(self._tools))
        return entry[0]

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: str) -> ToolSpecification:
        """Return the specification registered under *name*.

        Raises:
            UnknownToolError: If *name* is not registered.
        """
        entry = self._tools.get(name)
        if entry is None:
            raise UnknownToolError(name)
        return entry[0]

    def get_definitions(self) -> list[ToolSpecification]:
        """Return all registered specifications (insertion order)."""
        return [spec for spec, _func in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, name: str, arguments: Mapping[str, Any] | None) -> ToolCallResult:
        """Call the tool *name* with *arguments* and coerce its output.

        Exceptions raised by the tool itself propagate to the caller.

        Raises:
            UnknownToolError: If *name* is not registered.
        """
        entry = self._tools.get(name)
        if entry is None:
            raise UnknownToolError(name)
        spec, func = entry

        ordered = spec.order_arguments(arguments)
        logger.debug("Executing tool %s%r", name, tuple(ordered))
        output = func(*ordered)
        return ToolCallResult(name=name, arguments=ordered, output=coerce_output(output))
