"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Request, UploadFile, status
from fastapi.responses import JSONResponse

from plantid.api.middleware import verify_api_key
from plantid.api.schemas import (
    ClassifyResponse,
    ErrorResponse,
    HealthResponse,
    ModeBody,
    ModelInfo,
    ModelsResponse,
)
from plantid.ml.errors import InvalidImageError
from plantid.ml.image_classifier import ClassificationMode
from plantid.ml.preprocessing import decode_image

if TYPE_CHECKING:
    from plantid.config import Settings
    from plantid.ml.dispatcher import Dispatcher, ModeToggle
    from plantid.ml.image_classifier import LocalClassifier
    from plantid.ml.inference import InferencePool
    from plantid.ml.model_manager import ModelHandle
    from plantid.ml.remote_classifier import RemoteClassifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_mode_toggle(request: Request) -> ModeToggle:
    toggle: ModeToggle = request.app.state.mode_toggle
    return toggle


@router.post(
    "/classify",
    response_model=ClassifyResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_413_CONTENT_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Identify the plant in an image",
)
async def classify(request: Request, file: UploadFile, mode: ClassificationMode | None = None) -> JSONResponse:
    """Classify an uploaded image with the requested backend, or the current mode."""
    settings = _get_settings(request)
    # Captured once; later mode switches do not affect this request.
    selected = mode if mode is not None else _get_mode_toggle(request).mode

    data = await file.read()
    if len(data) > settings.max_file_size:
        return JSONResponse(
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
            content={"detail": f"File exceeds {settings.max_file_size} bytes"},
        )

    try:
        image = decode_image(data, max_pixels=settings.max_image_pixels)
    except InvalidImageError as exc:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    dispatcher: Dispatcher = request.app.state.dispatcher
    try:
        result = await dispatcher.classify(image, selected)
    except TimeoutError:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Inference capacity exhausted, retry later"},
        )

    logger.info("Classified %s via %s: %s", file.filename, selected, result.label or result.error)
    return JSONResponse(content=ClassifyResponse.from_result(result).model_dump(mode="json"))


@router.get("/mode", response_model=ModeBody, summary="Current classification mode")
async def get_mode(request: Request) -> ModeBody:
    return ModeBody(mode=_get_mode_toggle(request).mode)


@router.put("/mode", response_model=ModeBody, summary="Switch classification mode")
async def set_mode(request: Request, body: ModeBody) -> ModeBody:
    toggle = _get_mode_toggle(request)
    toggle.set(body.mode)
    return ModeBody(mode=toggle.mode)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    local: LocalClassifier = request.app.state.local_classifier
    pool: InferencePool = request.app.state.inference_pool
    return HealthResponse(
        status="ok",
        model_loaded=local.available,
        mode=_get_mode_toggle(request).mode,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="Describe the configured model",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return the on-device model's status and shape, and the remote endpoint."""
    settings = _get_settings(request)
    model: ModelHandle | None = request.app.state.model
    local: LocalClassifier = request.app.state.local_classifier
    remote: RemoteClassifier = request.app.state.remote_classifier

    info = ModelInfo(
        name=settings.model_name,
        status="active" if model is not None else "unavailable",
        input_size=model.input_size if model is not None else None,
        output_dim=model.output_dim if model is not None else None,
        label_count=len(local.labels),
    )
    return ModelsResponse(models=[info], remote_endpoint=remote.endpoint)
