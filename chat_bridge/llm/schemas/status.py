"""Pydantic schemas for health and model listing responses."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    ok: bool = True
    status: Literal["ok", "degraded"]
    copilot: Literal["ok", "unavailable"]
    reason: str | None = None
    version: str
    active_requests: int


class ModelCard(BaseModel):
    id: str
    object: Literal["model"] = "model"
    created: int
    owned_by: str
    permission: list[Any] = Field(default_factory=list)
    root: str
    parent: str | None = None


class ModelList(BaseModel):
    object: Literal["list"] = "list"
    data: list[ModelCard]
