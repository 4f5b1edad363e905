"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI

from imclassify.api.routes import router
from imclassify.config import get_settings
from imclassify.ml.classifier import ImageClassifier
from imclassify.ml.errors import ClassifierError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting imclassify (assets=%s, default_model=%s, workers=%s)",
        settings.assets_dir,
        settings.default_model,
        settings.max_workers,
    )

    classifier = ImageClassifier(settings)
    app.state.classifier = classifier
    try:
        await classifier.initialize()
    except ClassifierError as exc:
        logger.warning("Default model not loaded (%s); waiting for an explicit load", exc)

    logger.info("imclassify ready (state=%s)", classifier.state)
    yield

    logger.info("Shutting down imclassify")
    await classifier.close()
    logger.info("imclassify shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="imclassify",
        description="Local top-3 image classification over packaged ONNX models",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the application with uvicorn."""
    settings = get_settings()
    uvicorn.run("imclassify.main:app", host=settings.host, port=settings.port)
