"""API route definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Request, UploadFile, status
from fastapi.responses import JSONResponse

from imclassify.api.schemas import (
    ClassifyImageResponse,
    ErrorResponse,
    HealthResponse,
    ImageTag,
    LoadModelResponse,
    ModelInfo,
    ModelsResponse,
)
from imclassify.ml.errors import (
    ClassifierClosedError,
    ClassifierError,
    InferenceFailureError,
    ResourceNotFoundError,
    UninitializedError,
)
from imclassify.ml.packing import decode_image

if TYPE_CHECKING:
    from imclassify.config import Settings
    from imclassify.ml.classifier import ImageClassifier


router = APIRouter(prefix="/api/v1")

_ERROR_STATUS: dict[type[ClassifierError], int] = {
    ResourceNotFoundError: status.HTTP_404_NOT_FOUND,
    UninitializedError: status.HTTP_409_CONFLICT,
    InferenceFailureError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ClassifierClosedError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_classifier(request: Request) -> ImageClassifier:
    classifier: ImageClassifier = request.app.state.classifier
    return classifier


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def _classifier_error(exc: ClassifierError) -> JSONResponse:
    status_code = _ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return _error(status_code, str(exc))


@router.post(
    "/classify-image",
    response_model=ClassifyImageResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
        status.HTTP_413_CONTENT_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Classify an image with the active model",
)
async def classify_image(request: Request, file: UploadFile) -> ClassifyImageResponse | JSONResponse:
    """Classify an uploaded image and return the top ranked tags."""
    settings = _get_settings(request)
    classifier = _get_classifier(request)

    if not classifier.is_initialized:
        return _error(status.HTTP_409_CONFLICT, "Model is not initialized yet")

    data = await file.read()
    if len(data) > settings.max_file_size:
        return _error(
            status.HTTP_413_CONTENT_TOO_LARGE,
            f"File is {len(data)} bytes, limit is {settings.max_file_size}",
        )

    try:
        image = decode_image(data, settings.max_image_pixels)
    except ValueError as exc:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    try:
        result = await classifier.classify(image)
    except ClassifierError as exc:
        return _classifier_error(exc)
    except TimeoutError:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Classification timed out")

    return ClassifyImageResponse(
        tags=[ImageTag(label=p.label, confidence=p.confidence / 100) for p in result.predictions],
        inference_time_ms=result.inference_time_ms,
        text=result.format(),
    )


@router.post(
    "/models/{name}/load",
    response_model=LoadModelResponse,
    responses={
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Load a model artifact from the asset store",
)
async def load_model(request: Request, name: str) -> LoadModelResponse | JSONResponse:
    """Make the named model the active one."""
    classifier = _get_classifier(request)
    try:
        await classifier.load_model_from_assets(name)
    except ClassifierError as exc:
        return _classifier_error(exc)
    except TimeoutError:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Model loading timed out")

    input_size = classifier.input_size
    if input_size is None:
        return _error(status.HTTP_409_CONFLICT, f"Model '{name}' was replaced before it could be reported")
    width, height = input_size
    return LoadModelResponse(model=name, input_width=width, input_height=height)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    classifier = _get_classifier(request)
    input_size = classifier.input_size
    return HealthResponse(
        status="ok",
        state=classifier.state.value,
        model=classifier.model_name,
        input_width=input_size[0] if input_size else None,
        input_height=input_size[1] if input_size else None,
        concurrent_requests=classifier.pool.active_count,
        queue_depth=classifier.pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return model artifacts found in the asset store."""
    classifier = _get_classifier(request)
    active = classifier.model_name

    models = [
        ModelInfo(name=name, status="active" if name == active else "available")
        for name in classifier.store.list_models()
    ]
    return ModelsResponse(models=models)
