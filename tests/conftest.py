"""Shared fakes for PlantID tests."""

from __future__ import annotations

import io
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any

import numpy as np
import pytest
from PIL import Image

from plantid.ml.model_manager import ModelHandle

if TYPE_CHECKING:
    from collections.abc import Sequence

LABELS: tuple[str, ...] = ("Ficus lyrata", "Monstera deliciosa", "Aloe vera")


class FakeSession:
    """Stands in for an onnxruntime InferenceSession."""

    def __init__(
        self,
        scores: Sequence[float],
        input_shape: Sequence[int | str] = (1, 224, 224, 3),
        input_type: str = "tensor(float)",
        error: Exception | None = None,
    ) -> None:
        self.scores = list(scores)
        self.input_shape = list(input_shape)
        self.input_type = input_type
        self.error = error
        self.feeds: list[dict[str, Any]] = []

    def get_inputs(self) -> list[SimpleNamespace]:
        return [SimpleNamespace(name="input", shape=self.input_shape, type=self.input_type)]

    def get_outputs(self) -> list[SimpleNamespace]:
        return [SimpleNamespace(name="output", shape=[1, len(self.scores)])]

    def run(self, output_names: list[str] | None, feeds: dict[str, Any]) -> list[np.ndarray]:
        self.feeds.append(feeds)
        if self.error is not None:
            raise self.error
        return [np.asarray([self.scores], dtype=np.float32)]


def make_handle(session: FakeSession, name: str = "plant_model") -> ModelHandle:
    return ModelHandle.from_session(name, session, default_size=224)


def make_image(size: tuple[int, int] = (64, 48), color: tuple[int, int, int] = (30, 160, 60)) -> Image.Image:
    return Image.new("RGB", size, color)


def image_bytes(image: Image.Image, fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture()
def image() -> Image.Image:
    return make_image()


@pytest.fixture()
def session() -> FakeSession:
    """Session whose highest score is index 2 ("Aloe vera")."""
    return FakeSession([0.1, 0.2, 0.6, 0.1])
