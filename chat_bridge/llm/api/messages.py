"""Anthropic-compatible messages endpoint."""

from fastapi import APIRouter, Depends, Request, Response

from ..services.dispatcher import RequestDispatcher
from .deps import get_dispatcher, require_token

router = APIRouter(prefix="/v1", tags=["anthropic"], dependencies=[Depends(require_token)])


@router.post("/messages")
async def create_message(
    request: Request,
    dispatcher: RequestDispatcher = Depends(get_dispatcher),
) -> Response:
    return await dispatcher.messages(request)
