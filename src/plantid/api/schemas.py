"""Pydantic request/response schemas for the PlantID API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from plantid.ml.errors import ApiError, ClassificationError
from plantid.ml.image_classifier import ClassificationMode, ClassificationResult


class ClassificationErrorInfo(BaseModel):
    """Why a classification attempt produced no label."""

    kind: str = Field(description="Error kind, e.g. 'inference_error', 'api_error', 'network_error'")
    message: str
    status_code: int | None = Field(default=None, description="Remote HTTP status for 'api_error'")

    @classmethod
    def from_error(cls, error: ClassificationError) -> ClassificationErrorInfo:
        return cls(
            kind=error.kind,
            message=str(error),
            status_code=error.status_code if isinstance(error, ApiError) else None,
        )


class ClassifyResponse(BaseModel):
    """Result of a single classification request."""

    label: str | None
    source: ClassificationMode
    error: ClassificationErrorInfo | None = None

    @classmethod
    def from_result(cls, result: ClassificationResult) -> ClassifyResponse:
        return cls(
            label=result.label,
            source=result.source,
            error=ClassificationErrorInfo.from_error(result.error) if result.error is not None else None,
        )


class ModeBody(BaseModel):
    """Current (or requested) classification mode."""

    mode: ClassificationMode


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    model_loaded: bool
    mode: ClassificationMode
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about the configured on-device model."""

    name: str
    status: str = Field(description="Model status: 'active' or 'unavailable'")
    input_size: int | None
    output_dim: int | None
    label_count: int


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]
    remote_endpoint: str


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
