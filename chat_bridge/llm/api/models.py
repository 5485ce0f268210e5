"""Model listing endpoint."""

import time

from fastapi import APIRouter, Depends

from ...core.logging_config import get_logger
from ..schemas.status import ModelCard, ModelList
from ..services.context import BridgeContext
from ..services.model_resolver import DEFAULT_ALIAS
from .deps import get_context, require_token

router = APIRouter(prefix="/v1", tags=["models"], dependencies=[Depends(require_token)])
logger = get_logger(__name__)


@router.get("/models", response_model=ModelList)
async def list_models(context: BridgeContext = Depends(get_context)) -> ModelList:
    owner = context.settings.model_owner
    models = []
    if context.resolver.backing_available:
        try:
            models = await context.resolver.list_models()
        except Exception as exc:
            logger.warning("model_listing_failed", error_type=type(exc).__name__, message=str(exc))

    if not models:
        return ModelList(
            data=[ModelCard(id=DEFAULT_ALIAS, created=int(time.time()), owned_by=owner, root=DEFAULT_ALIAS)]
        )
    return ModelList(
        data=[
            ModelCard(id=model.id, created=model.created, owned_by=owner, root=model.id)
            for model in models
        ]
    )
