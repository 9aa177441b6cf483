"""Model manager: locate, download, and load the on-device plant model.

The model is loaded once at startup and held for the app's lifetime. A load
failure is logged and reported as ``None`` so the service can still run in
remote-only mode.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

if TYPE_CHECKING:
    from plantid.config import Settings
    from plantid.ml.preprocessing import TensorDType, TensorLayout

logger = logging.getLogger(__name__)

# Placeholder table; replace via PLANTID_LABELS_PATH.
DEFAULT_LABELS: tuple[str, ...] = (
    "Ficus lyrata",
    "Monstera deliciosa",
    "Aloe vera",
    "Unknown",
)

_ONNX_DTYPES: dict[str, TensorDType] = {
    "tensor(float)": "float32",
    "tensor(uint8)": "uint8",
}


@dataclass(frozen=True)
class ModelHandle:
    """A loaded model plus the input/output shape it declares."""

    name: str
    session: Any
    input_name: str
    input_size: int
    layout: TensorLayout
    dtype: TensorDType
    output_dim: int | None

    @classmethod
    def from_session(cls, name: str, session: Any, default_size: int) -> ModelHandle:
        """Inspect a session's first input/output and build a handle.

        Square inputs are read from the declared shape; dynamic dimensions
        fall back to ``default_size``.
        """
        model_input = session.get_inputs()[0]
        shape = list(model_input.shape)
        if len(shape) != 4:
            raise ValueError(f"Expected a 4-D image input, got shape {shape}")

        if shape[1] in (1, 3):
            layout: TensorLayout = "nchw"
            spatial = shape[2]
        else:
            layout = "nhwc"
            spatial = shape[1]
        input_size = spatial if isinstance(spatial, int) and spatial > 0 else default_size

        try:
            dtype = _ONNX_DTYPES[model_input.type]
        except KeyError:
            raise ValueError(f"Unsupported input type: {model_input.type}") from None

        output_shape = list(session.get_outputs()[0].shape)
        output_dim = output_shape[-1] if output_shape and isinstance(output_shape[-1], int) else None

        return cls(
            name=name,
            session=session,
            input_name=model_input.name,
            input_size=input_size,
            layout=layout,
            dtype=dtype,
            output_dim=output_dim,
        )


def load_labels(path: str | Path | None) -> tuple[str, ...]:
    """Read one label per line; blank lines are skipped.

    Without a path the built-in placeholder table is returned.
    """
    if path is None:
        return DEFAULT_LABELS
    text = Path(path).read_text(encoding="utf-8")
    labels = tuple(line.strip() for line in text.splitlines() if line.strip())
    if not labels:
        logger.warning("Labels file %s is empty; every prediction maps to 'Unknown'", path)
    else:
        logger.info("Loaded %d labels from %s", len(labels), path)
    return labels


def resolve_labels(path: str | Path | None) -> tuple[str, ...]:
    """Like :func:`load_labels`, but an unreadable file falls back to the default table."""
    try:
        return load_labels(path)
    except (OSError, UnicodeDecodeError):
        logger.exception("Failed to read labels from %s; using built-in labels", path)
        return DEFAULT_LABELS


class OnnxModelManager:
    """Resolves the model asset and creates its ONNX inference session."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)
        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    def ensure_downloaded(self) -> Path:
        """Return the model file, downloading it from HuggingFace if configured."""
        if self._settings.model_path is not None:
            path = Path(self._settings.model_path)
            if not path.exists():
                raise FileNotFoundError(f"Model file not found: {path}")
            return path

        local = self._models_dir / self._settings.model_filename
        if local.exists():
            return local

        if self._settings.model_repo_id is None:
            raise FileNotFoundError(f"Model file not found: {local} (no PLANTID_MODEL_REPO_ID configured)")

        self._models_dir.mkdir(parents=True, exist_ok=True)
        downloaded = Path(
            hf_hub_download(
                repo_id=self._settings.model_repo_id,
                filename=self._settings.model_filename,
                local_dir=str(self._models_dir),
            )
        )
        logger.info("Downloaded %s to %s", self._settings.model_name, downloaded)
        return downloaded

    def load(self) -> ModelHandle | None:
        """Load the model; return ``None`` if it cannot be loaded."""
        name = self._settings.model_name
        try:
            model_path = self.ensure_downloaded()
            session = InferenceSession(
                str(model_path),
                sess_options=self._session_options,
                providers=self._providers,
            )
            handle = ModelHandle.from_session(name, session, self._settings.input_size)
        except Exception:
            logger.exception("Failed to load model %s; local classification disabled", name)
            return None

        logger.info(
            "Loaded %s (input=%dx%d %s %s, outputs=%s)",
            name,
            handle.input_size,
            handle.input_size,
            handle.layout,
            handle.dtype,
            handle.output_dim,
        )
        return handle

    # -- Internal -----------------------------------------------------------

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
