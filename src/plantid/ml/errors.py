"""Error kinds a classification attempt can end with.

Classifiers raise these internally and convert them into
``ClassificationResult.error`` at their boundary.
"""

from __future__ import annotations


class ClassificationError(Exception):
    """Base class for every classification failure."""

    kind: str = "classification_error"


class InvalidImageError(ClassificationError):
    """The input raster is empty or uses an unsupported pixel format."""

    kind = "invalid_image"


class InferenceError(ClassificationError):
    """The local model failed while running."""

    kind = "inference_error"


class ModelUnavailableError(ClassificationError):
    """The local model failed to load at startup."""

    kind = "model_unavailable"

    def __init__(self, message: str = "Local model is not loaded") -> None:
        super().__init__(message)


class ApiError(ClassificationError):
    """The remote classification API answered with a non-2xx status."""

    kind = "api_error"

    def __init__(self, status_code: int) -> None:
        super().__init__(f"API error: {status_code}")
        self.status_code = status_code

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ApiError):
            return NotImplemented
        return self.status_code == other.status_code

    def __hash__(self) -> int:
        return hash((type(self), self.status_code))


class NetworkError(ClassificationError):
    """The request to the remote classification API never got a response."""

    kind = "network_error"

    def __init__(self, message: str) -> None:
        super().__init__(f"Network error: {message}")
        self.message = message
