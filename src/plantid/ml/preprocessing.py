"""Image preprocessing pipeline.

Handles decoding uploads, resizing to the local model's square input,
conversion to input tensors, and JPEG/base64 encoding for the remote API.
"""

from __future__ import annotations

import base64
import io
from typing import TYPE_CHECKING, Literal

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from plantid.ml.errors import InvalidImageError

if TYPE_CHECKING:
    from numpy.typing import NDArray

SUPPORTED_MODES = frozenset({"1", "L", "LA", "P", "RGB", "RGBA"})

DEFAULT_JPEG_QUALITY: int = 90

TensorLayout = Literal["nhwc", "nchw"]
TensorDType = Literal["float32", "uint8"]


def _validate(image: Image.Image) -> None:
    width, height = image.size
    if width <= 0 or height <= 0:
        raise InvalidImageError(f"Image has zero dimension ({width}x{height})")
    if image.mode not in SUPPORTED_MODES:
        raise InvalidImageError(f"Unsupported pixel format: {image.mode}")


def decode_image(data: bytes, max_pixels: int | None = None) -> Image.Image:
    """Decode raw image bytes into an RGB image.

    Raises:
        InvalidImageError: If the bytes cannot be decoded or the image is too large.
    """
    try:
        with Image.open(io.BytesIO(data)) as opened:
            width, height = opened.size
            if max_pixels is not None and width * height > max_pixels:
                raise InvalidImageError(f"Image exceeds {max_pixels} pixels ({width}x{height})")
            image = ImageOps.exif_transpose(opened)
            image.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise InvalidImageError(f"Cannot decode image: {exc}") from exc

    if image.mode not in SUPPORTED_MODES:
        image = _to_rgb(image)
    _validate(image)
    return image.convert("RGB")


def _to_rgb(image: Image.Image) -> Image.Image:
    """Convert decoded rasters such as CMYK, YCbCr or 16-bit grayscale to RGB."""
    if image.mode.startswith("I;16"):
        # Keep the high byte of each 16-bit sample.
        pixels = np.asarray(image).astype(np.uint16) >> 8
        return Image.fromarray(pixels.astype(np.uint8)).convert("RGB")
    try:
        return image.convert("RGB")
    except ValueError as exc:
        raise InvalidImageError(f"Unsupported pixel format: {image.mode}") from exc


def prepare(image: Image.Image, target_size: int) -> Image.Image:
    """Scale an image to ``target_size`` x ``target_size`` RGB.

    Bilinear interpolation, no cropping or letterboxing: the aspect ratio is
    not preserved.
    """
    _validate(image)
    return image.convert("RGB").resize((target_size, target_size), Image.Resampling.BILINEAR)


def to_input_tensor(
    image: Image.Image,
    layout: TensorLayout = "nhwc",
    dtype: TensorDType = "float32",
    mean: float = 0.0,
    std: float = 255.0,
) -> NDArray[np.float32] | NDArray[np.uint8]:
    """Convert a fixed-size RGB image into a batched model input tensor.

    Args:
        image: Output of :func:`prepare`.
        layout: ``nhwc`` (1xHxWx3, interleaved) or ``nchw`` (1x3xHxW, planar).
        dtype: ``uint8`` keeps raw pixel bytes, ``float32`` applies ``(x - mean) / std``.
        mean: Value subtracted from each float pixel.
        std: Divisor applied to each float pixel.
    """
    pixels = np.asarray(image.convert("RGB"), dtype=np.uint8)
    if dtype == "uint8":
        tensor: NDArray[np.float32] | NDArray[np.uint8] = pixels
    else:
        tensor = ((pixels.astype(np.float32) - mean) / std).astype(np.float32)

    if layout == "nchw":
        tensor = tensor.transpose(2, 0, 1)
    return np.ascontiguousarray(tensor[np.newaxis, ...])


def encode(image: Image.Image, quality: int = DEFAULT_JPEG_QUALITY) -> str:
    """Serialize an image to JPEG and return it as an ASCII base64 string."""
    _validate(image)
    buffer = io.BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=quality)
    return base64.b64encode(buffer.getvalue()).decode("ascii")
