"""Health check endpoints."""

from fastapi import APIRouter, Depends, Request

from ..schemas.status import HealthResponse
from ..services.context import BridgeContext
from .deps import get_context

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse, response_model_exclude_none=True)
@router.get("/healthz", response_model=HealthResponse, response_model_exclude_none=True)
async def health_check(request: Request, context: BridgeContext = Depends(get_context)) -> HealthResponse:
    state = context.state
    if state.model_handle is None and context.settings.verbose:
        # Records last_reason on failure.
        await context.resolver.resolve()

    copilot_ok = state.model_handle is not None
    return HealthResponse(
        ok=True,
        status="ok" if copilot_ok else "degraded",
        copilot="ok" if copilot_ok else "unavailable",
        reason=None if copilot_ok else state.last_reason,
        version=request.app.version,
        active_requests=state.active_requests,
    )
