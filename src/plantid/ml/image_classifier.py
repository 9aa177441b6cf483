"""On-device plant classification with the loaded ONNX model."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

import numpy as np

from plantid.ml.errors import (
    ClassificationError,
    InferenceError,
    InvalidImageError,
    ModelUnavailableError,
)
from plantid.ml.preprocessing import prepare, to_input_tensor

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import ArrayLike
    from PIL import Image

    from plantid.ml.model_manager import ModelHandle

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "Unknown"


class ClassificationMode(StrEnum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of one classification attempt: a label or an error, never both."""

    source: ClassificationMode
    label: str | None = None
    error: ClassificationError | None = None

    def __post_init__(self) -> None:
        if (self.label is None) == (self.error is None):
            raise ValueError("ClassificationResult needs exactly one of label or error")

    @property
    def ok(self) -> bool:
        return self.error is None


def select_max_index(scores: ArrayLike) -> int:
    """Index of the highest score; ties go to the lowest index."""
    flat = np.asarray(scores).ravel()
    if flat.size == 0:
        raise InferenceError("Model returned no scores")
    # np.argmax returns the first occurrence of the maximum.
    return int(np.argmax(flat))


def label_for_index(labels: Sequence[str], index: int) -> str:
    if 0 <= index < len(labels):
        return labels[index]
    return UNKNOWN_LABEL


class LocalClassifier:
    """Runs the on-device model over a single image."""

    def __init__(
        self,
        model: ModelHandle | None,
        labels: Sequence[str],
        mean: float = 0.0,
        std: float = 255.0,
    ) -> None:
        self._model = model
        self._labels = tuple(labels)
        self._mean = mean
        self._std = std
        if model is not None and model.output_dim is not None and model.output_dim > len(self._labels):
            logger.warning(
                "Model %s has %d outputs but only %d labels; higher indices map to %r",
                model.name,
                model.output_dim,
                len(self._labels),
                UNKNOWN_LABEL,
            )

    @property
    def available(self) -> bool:
        return self._model is not None

    @property
    def labels(self) -> tuple[str, ...]:
        return self._labels

    def classify(self, image: Image.Image) -> ClassificationResult:
        """Classify an image synchronously. Blocks until inference completes.

        Never raises: failures are returned as the result's ``error``.
        """
        model = self._model
        if model is None:
            return ClassificationResult(source=ClassificationMode.LOCAL, error=ModelUnavailableError())

        try:
            fixed = prepare(image, model.input_size)
        except InvalidImageError as exc:
            return ClassificationResult(source=ClassificationMode.LOCAL, error=exc)

        tensor = to_input_tensor(fixed, layout=model.layout, dtype=model.dtype, mean=self._mean, std=self._std)
        try:
            outputs = model.session.run(None, {model.input_name: tensor})
            index = select_max_index(outputs[0])
        except Exception as exc:
            logger.warning("Inference failed for %s: %s", model.name, exc)
            error = exc if isinstance(exc, InferenceError) else InferenceError(str(exc))
            return ClassificationResult(source=ClassificationMode.LOCAL, error=error)

        return ClassificationResult(source=ClassificationMode.LOCAL, label=label_for_index(self._labels, index))
