"""Environment-based configuration for PlantID."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from PLANTID_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PLANTID_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8082

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Local model asset (explicit path wins over the HuggingFace download)
    model_name: str = "plant_model"
    model_path: str | None = None
    model_repo_id: str | None = None
    model_filename: str = "plant_model.onnx"
    models_dir: str = "models"
    labels_path: str | None = None

    # Local preprocessing
    input_size: int = Field(default=224, ge=1)
    input_mean: float = 0.0
    input_std: float = Field(default=255.0, gt=0.0)

    # Remote classification API
    remote_base_url: str = "https://your-plant-api.example.com"
    remote_timeout: float | None = Field(default=None, gt=0.0)
    jpeg_quality: int = Field(default=90, ge=1, le=100)

    # Mode selected when the toggle has not been changed
    default_mode: Literal["local", "remote"] = "local"

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=209_715_200, ge=1)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
