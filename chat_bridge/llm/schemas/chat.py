"""Pydantic schemas for the OpenAI Chat Completions dialect."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

RoleLiteral = Literal["system", "user", "assistant", "tool"]


class FunctionCall(BaseModel):
    name: str
    arguments: str = ""


class ToolCall(BaseModel):
    id: str
    type: Literal["function"] = "function"
    function: FunctionCall


class ToolFunction(BaseModel):
    name: str
    description: str | None = None
    parameters: dict[str, Any] | None = None


class ToolSpec(BaseModel):
    type: Literal["function"] = "function"
    function: ToolFunction


class NamedFunction(BaseModel):
    name: str


class NamedToolChoice(BaseModel):
    type: Literal["function"] = "function"
    function: NamedFunction


class ChatMessage(BaseModel):
    role: RoleLiteral
    content: str | list[Any] | None = None
    name: str | None = None
    tool_call_id: str | None = Field(None, description="Tool call identifier for tool messages")
    tool_calls: list[ToolCall] | None = Field(
        default=None, description="Assistant-emitted tool calls"
    )
    function_call: FunctionCall | None = Field(
        default=None, description="Deprecated single function call"
    )

    @model_validator(mode="after")
    def _check_role_fields(self) -> "ChatMessage":
        if self.role == "tool":
            if self.tool_call_id is None:
                raise ValueError("tool messages require tool_call_id")
            if not (self.content is None or isinstance(self.content, str)):
                raise ValueError("tool message content must be a string or null")
        elif self.role == "assistant":
            # An explicit null content still counts as present.
            has_content = "content" in self.model_fields_set
            if not (has_content or self.tool_calls is not None or self.function_call is not None):
                raise ValueError("assistant messages require content, tool_calls or function_call")
        elif self.content is None:
            raise ValueError(f"{self.role} messages require content")
        return self


class ChatCompletionRequest(BaseModel):
    """Fields the gateway consumes; other OpenAI parameters are accepted and ignored."""

    model_config = ConfigDict(extra="allow")

    model: str | None = None
    messages: list[ChatMessage] = Field(..., min_length=1)
    stream: bool = True
    tools: list[ToolSpec] | None = None
    tool_choice: Literal["none", "auto", "required"] | NamedToolChoice | None = None
    functions: list[ToolFunction] | None = None
    function_call: Literal["none", "auto"] | NamedFunction | None = None
