"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from plantid.config import Settings
    from plantid.ml.model_manager import ModelHandle

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from plantid.api.routes import router
from plantid.config import get_settings
from plantid.ml.dispatcher import Dispatcher, ModeToggle
from plantid.ml.image_classifier import ClassificationMode, LocalClassifier
from plantid.ml.inference import InferencePool
from plantid.ml.model_manager import OnnxModelManager, resolve_labels
from plantid.ml.remote_classifier import RemoteClassifier

logger = logging.getLogger(__name__)


def init_state(
    app: FastAPI,
    settings: Settings,
    model: ModelHandle | None,
    http_client: httpx.AsyncClient,
) -> None:
    """Wire classifiers, dispatcher, and mode toggle onto ``app.state``."""
    labels = resolve_labels(settings.labels_path)
    local = LocalClassifier(model, labels, mean=settings.input_mean, std=settings.input_std)
    remote = RemoteClassifier(settings.remote_base_url, http_client, jpeg_quality=settings.jpeg_quality)
    pool = InferencePool(settings.max_concurrent)

    app.state.settings = settings
    app.state.model = model
    app.state.http_client = http_client
    app.state.local_classifier = local
    app.state.remote_classifier = remote
    app.state.inference_pool = pool
    app.state.mode_toggle = ModeToggle(ClassificationMode(settings.default_mode))
    app.state.dispatcher = Dispatcher(local, remote, pool)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting PlantID (device=%s, max_concurrent=%s, model=%s, remote=%s, mode=%s)",
        settings.device,
        settings.max_concurrent,
        settings.model_name,
        settings.remote_base_url,
        settings.default_mode,
    )

    model = OnnxModelManager(settings).load()
    if model is None:
        logger.warning("Running in remote-only mode")

    if settings.remote_timeout is None:
        http_client = httpx.AsyncClient()
    else:
        http_client = httpx.AsyncClient(timeout=settings.remote_timeout)
    init_state(app, settings, model, http_client)

    logger.info("PlantID ready")
    yield

    logger.info("Shutting down PlantID")
    app.state.inference_pool.shutdown()
    await http_client.aclose()
    logger.info("PlantID shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="PlantID",
        description="Plant species identification with an on-device model or a remote API",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run("plantid.main:app", host=settings.host, port=settings.port)
