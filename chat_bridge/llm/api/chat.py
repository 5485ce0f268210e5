"""OpenAI-compatible chat completions endpoint."""

from fastapi import APIRouter, Depends, Request, Response

from ..services.dispatcher import RequestDispatcher
from .deps import get_dispatcher, require_token

router = APIRouter(prefix="/v1", tags=["openai"], dependencies=[Depends(require_token)])


@router.post("/chat/completions")
async def create_chat_completion(
    request: Request,
    dispatcher: RequestDispatcher = Depends(get_dispatcher),
) -> Response:
    return await dispatcher.chat_completions(request)
