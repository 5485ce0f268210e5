"""Resolve requested model identifiers to backing model handles."""

from __future__ import annotations

import re

from ...core.exceptions import ExternalServiceError
from ...core.logging_config import get_logger
from ...core.state import BridgeState, StatusSink
from ...core.types import (
    ModelHandle,
    ModelInfo,
    ModelProvider,
    Unavailable,
    UnavailabilityReason,
)

logger = get_logger(__name__)

DEFAULT_ALIAS = "copilot"
_ALIAS_SUFFIX = re.compile(r"-copilot$", re.IGNORECASE)


def requested_family(requested: str | None) -> str | None:
    """Strip the gateway alias from a requested id; ``None`` means "the default model"."""

    if not requested:
        return None
    requested = requested.strip()
    if not requested or requested.lower() == DEFAULT_ALIAS:
        return None
    return _ALIAS_SUFFIX.sub("", requested) or None


def classify_failure(exc: Exception) -> UnavailabilityReason:
    if isinstance(exc, ExternalServiceError) and exc.reason:
        return exc.reason  # type: ignore[return-value]
    message = str(exc)
    if re.search(r"not found|unknown model", message, re.IGNORECASE):
        return "not_found"
    return "copilot_model_unavailable"


class ModelResolver:
    """Selects backing models and caches the default handle until invalidated."""

    def __init__(
        self,
        provider: ModelProvider,
        state: BridgeState,
        status: StatusSink,
        *,
        default_model: str | None = None,
    ) -> None:
        self._provider = provider
        self._state = state
        self._status = status
        self._default_model = default_model
        self._catalog: list[ModelInfo] | None = None

    @property
    def backing_available(self) -> bool:
        return self._provider.available

    @property
    def cached(self) -> ModelHandle | None:
        return self._state.model_handle

    def invalidate(self) -> None:
        if self._state.model_handle is not None or self._catalog is not None:
            logger.info("model_cache_invalidated")
        self._state.model_handle = None
        self._catalog = None

    async def list_models(self) -> list[ModelInfo]:
        return list(await self._load_catalog())

    async def _load_catalog(self) -> list[ModelInfo]:
        if self._catalog is None:
            self._catalog = await self._provider.list_models()
            logger.debug("model_catalog_loaded", count=len(self._catalog))
        return self._catalog

    def _fail(self, reason: UnavailabilityReason, family: str | None, detail: str | None = None) -> Unavailable:
        if family is None:
            self._state.model_handle = None
        self._state.last_reason = reason
        self._status.update("error", self._state)
        logger.info("model_unavailable", reason=reason, family=family, detail=detail)
        return Unavailable(reason=reason, detail=detail)

    def _succeed(self, handle: ModelHandle, *, cache: bool) -> ModelHandle:
        if cache:
            self._state.model_handle = handle
        self._state.last_reason = None
        self._status.update("success", self._state)
        return handle

    async def resolve(self, requested: str | None = None, *, force: bool = False) -> ModelHandle | Unavailable:
        """Return a handle for ``requested`` (or the default model) or why there is none.

        Only the default model is cached; explicitly requested models are looked
        up in the cached catalog on every call.
        """

        family = requested_family(requested)
        if not force and family is None and self._state.model_handle is not None:
            return self._state.model_handle

        self._state.model_attempted = True

        if not self._provider.available:
            return self._fail("missing_language_model_api", family)

        try:
            catalog = await self._load_catalog()
        except Exception as exc:
            logger.warning("model_catalog_failed", error_type=type(exc).__name__, message=str(exc))
            self._catalog = None
            return self._fail(classify_failure(exc), family, detail=str(exc))

        if family is not None:
            lowered = family.lower()
            match = next(
                (m for m in catalog if m.id == family),
                next((m for m in catalog if m.id.lower() == lowered), None),
            )
            if match is None:
                return self._fail("not_found", family)
            return self._succeed(self._provider.handle_for(match.id), cache=False)

        if not catalog:
            return self._fail("copilot_model_unavailable", None, detail="no models available")

        if self._default_model:
            chosen = next((m for m in catalog if m.id == self._default_model), None)
            if chosen is None:
                return self._fail(
                    "copilot_model_unavailable",
                    None,
                    detail=f"default model {self._default_model!r} is not offered by the backend",
                )
        else:
            chosen = catalog[0]
        return self._succeed(self._provider.handle_for(chosen.id), cache=True)
