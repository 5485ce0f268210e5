"""Fold OpenAI and Anthropic message histories into backing-model turns.

The backing model only understands alternating ``user``/``assistant`` text
turns, so system prompts, tool calls and tool results are rendered inline:

* the system prompt is folded into the first user turn (``[SYSTEM]`` marker),
* assistant tool calls become ``[TOOL_CALL:<id>] name(args)`` lines,
* tool results become user turns starting with ``[TOOL_RESULT:<id>]``.

Only the last ``history_window * 3`` messages are kept; the multiplier leaves
room for the tool-call and tool-result turns that accompany each exchange.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from ...core.types import BackingMessage
from ..schemas.anthropic import (
    AnthropicMessage,
    MessagesRequest,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from ..schemas.chat import ChatMessage

HISTORY_MULTIPLIER = 3


def _json_text(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def content_to_text(content: Any) -> str:
    """Collapse message content of any shape into plain text."""

    # Null renders empty, never as the JSON literal "null".
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, (list, tuple)):
        return "\n".join(content_to_text(item) for item in content)
    if isinstance(content, dict) and isinstance(content.get("text"), str):
        return content["text"]
    try:
        return _json_text(content)
    except (TypeError, ValueError):
        return str(content)


def _window(messages: Sequence[Any], history_window: int) -> list[Any]:
    return list(messages[-history_window * HISTORY_MULTIPLIER:])


def _render_assistant(message: ChatMessage) -> str:
    text = content_to_text(message.content) if message.content else ""

    if message.tool_calls:
        calls = "\n".join(
            f"[TOOL_CALL:{call.id}] {call.function.name}({call.function.arguments})"
            for call in message.tool_calls
        )
        text = f"{text}\n{calls}" if text else calls

    if not text and message.function_call is not None:
        text = f"[FUNCTION_CALL] {message.function_call.name}({message.function_call.arguments})"
    return text


def normalize_openai_messages(
    messages: Sequence[ChatMessage], history_window: int
) -> list[BackingMessage]:
    """Convert an OpenAI-style message list into backing-model turns.

    The last system message wins; earlier ones are dropped.
    """

    system_messages = [m for m in messages if m.role == "system"]
    system_prompt = content_to_text(system_messages[-1].content) if system_messages else None

    conversation = _window(
        [m for m in messages if m.role in ("user", "assistant", "tool")], history_window
    )

    result: list[BackingMessage] = []
    first_user_seen = False

    for message in conversation:
        if message.role == "user":
            text = content_to_text(message.content)
            if not first_user_seen and system_prompt is not None:
                text = f"[SYSTEM]\n{system_prompt}\n\n[DIALOG]\nuser: {text}"
                first_user_seen = True
            result.append(BackingMessage.user(text))
        elif message.role == "assistant":
            result.append(BackingMessage.assistant(_render_assistant(message)))
        else:
            result.append(
                BackingMessage.user(
                    f"[TOOL_RESULT:{message.tool_call_id}] {content_to_text(message.content)}"
                )
            )

    if not first_user_seen and system_prompt is not None:
        result.insert(0, BackingMessage.user(f"[SYSTEM]\n{system_prompt}"))

    if not result:
        result.append(BackingMessage.user(""))
    return result


def anthropic_system_prompt(system: str | list[Any] | None) -> str:
    if system is None:
        return ""
    if isinstance(system, str):
        return system
    # Only text blocks contribute; cache hints, images and the like are skipped.
    return "\n".join(block.text for block in system if isinstance(block, TextBlock))


def _tool_result_text(block: ToolResultBlock) -> str:
    if isinstance(block.content, str):
        text = block.content
    elif block.content is None:
        text = ""
    else:
        text = "\n".join(
            item["text"]
            for item in block.content
            if item.get("type") == "text" and isinstance(item.get("text"), str)
        )
    if block.is_error:
        text = f"[ERROR] {text}"
    return f"[TOOL_RESULT:{block.tool_use_id}]\n{text}"


def anthropic_content_to_text(message: AnthropicMessage) -> str:
    """Render Anthropic content blocks as text; thinking, images and other blocks are dropped."""

    if isinstance(message.content, str):
        return message.content

    parts: list[str] = []
    for block in message.content:
        if isinstance(block, TextBlock):
            parts.append(block.text)
        elif isinstance(block, ToolUseBlock):
            parts.append(f"[TOOL_CALL:{block.id}] {block.name}({_json_text(block.input)})")
        elif isinstance(block, ToolResultBlock):
            parts.append(_tool_result_text(block))
    return "\n".join(parts)


def normalize_anthropic_messages(
    request: MessagesRequest, history_window: int
) -> list[BackingMessage]:
    """Convert an Anthropic Messages request into backing-model turns."""

    system_prompt = anthropic_system_prompt(request.system)
    conversation = _window(request.messages, history_window)

    result: list[BackingMessage] = []
    for index, message in enumerate(conversation):
        text = anthropic_content_to_text(message)
        if message.role == "user":
            if index == 0 and system_prompt:
                text = f"[SYSTEM]\n{system_prompt}\n\n{text}"
            result.append(BackingMessage.user(text))
        else:
            result.append(BackingMessage.assistant(text))

    if system_prompt and (not conversation or conversation[0].role != "user"):
        result.insert(0, BackingMessage.user(f"[SYSTEM]\n{system_prompt}"))

    if not result:
        result.append(BackingMessage.user(""))
    return result
