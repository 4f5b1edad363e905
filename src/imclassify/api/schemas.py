"""Pydantic request/response schemas for the imclassify API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ImageTag(BaseModel):
    """A single classification tag with confidence score."""

    label: str
    confidence: float = Field(description="Model score for the label (0.0-1.0 for softmax outputs)")


class ClassifyImageResponse(BaseModel):
    """Response for image classification endpoint."""

    tags: list[ImageTag]
    inference_time_ms: int
    text: str = Field(description="Human-readable ranked result")


class LoadModelResponse(BaseModel):
    """Response after a model has been loaded."""

    model: str
    input_width: int
    input_height: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    state: str
    model: str | None
    input_width: int | None
    input_height: int | None
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """A model artifact available in the asset store."""

    name: str
    status: str = Field(description="Model status: 'active' or 'available'")


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
