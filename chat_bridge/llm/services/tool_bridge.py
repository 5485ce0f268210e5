"""Collapse request tool definitions into the backing model's tool schema."""

from __future__ import annotations

from collections.abc import Iterable

from ...core.types import BackingTool, Tool
from ..schemas.anthropic import MessagesRequest
from ..schemas.chat import ChatCompletionRequest, NamedFunction, NamedToolChoice, ToolFunction

_EMPTY_SCHEMA = {"type": "object", "properties": {}}


def _from_function(function: ToolFunction) -> Tool:
    return Tool(
        name=function.name,
        description=function.description,
        input_schema=function.parameters,
    )


def _select(tools: list[Tool], name: str) -> list[Tool]:
    # A name that matches nothing disables tools rather than falling back to all of them.
    return [tool for tool in tools if tool.name == name]


def merge_openai_tools(request: ChatCompletionRequest) -> list[Tool]:
    """Merge ``tools`` and deprecated ``functions`` honouring ``tool_choice``."""

    if request.tool_choice == "none" or request.function_call == "none":
        return []

    merged = [_from_function(spec.function) for spec in request.tools or []]
    merged.extend(_from_function(function) for function in request.functions or [])

    if isinstance(request.tool_choice, NamedToolChoice):
        return _select(merged, request.tool_choice.function.name)
    if isinstance(request.function_call, NamedFunction):
        return _select(merged, request.function_call.name)
    return merged


def merge_anthropic_tools(request: MessagesRequest) -> list[Tool]:
    """Normalise Anthropic ``tools`` honouring ``tool_choice``."""

    choice = request.tool_choice
    if choice is not None and choice.type == "none":
        return []

    tools = [
        Tool(name=tool.name, description=tool.description, input_schema=tool.input_schema)
        for tool in request.tools or []
    ]
    if choice is not None and choice.type == "tool":
        return _select(tools, choice.name or "")
    return tools


def to_backing_tools(tools: Iterable[Tool]) -> list[BackingTool]:
    """Map normalized tools to the backing schema; description is never ``None``."""

    return [
        BackingTool(
            name=tool.name,
            description=tool.description or "",
            input_schema=dict(tool.input_schema) if tool.input_schema else dict(_EMPTY_SCHEMA),
        )
        for tool in tools
    ]
