"""Tests for image preprocessing."""

from __future__ import annotations

import base64
import io

import numpy as np
import pytest
from PIL import Image

from plantid.ml.errors import InvalidImageError
from plantid.ml.preprocessing import decode_image, encode, prepare, to_input_tensor

from .conftest import image_bytes, make_image


class TestPrepare:
    def test_resizes_to_square_target(self) -> None:
        result = prepare(make_image((640, 480)), 224)
        assert result.size == (224, 224)
        assert result.mode == "RGB"

    def test_does_not_preserve_aspect_ratio(self) -> None:
        result = prepare(make_image((300, 20)), 32)
        # No letterboxing: every pixel still carries the source color.
        assert result.size == (32, 32)
        pixels = np.asarray(result).astype(int)
        assert (np.abs(pixels - [30, 160, 60]) <= 1).all()

    @pytest.mark.parametrize("mode", ["L", "RGBA", "P", "1"])
    def test_converts_supported_modes_to_rgb(self, mode: str) -> None:
        result = prepare(Image.new(mode, (10, 10)), 8)
        assert result.mode == "RGB"
        assert result.size == (8, 8)

    @pytest.mark.parametrize("size", [(0, 10), (10, 0), (0, 0)])
    def test_zero_dimension_raises(self, size: tuple[int, int]) -> None:
        with pytest.raises(InvalidImageError, match="zero dimension"):
            prepare(Image.new("RGB", size), 224)

    @pytest.mark.parametrize("mode", ["F", "I", "CMYK"])
    def test_unsupported_mode_raises(self, mode: str) -> None:
        with pytest.raises(InvalidImageError, match="Unsupported pixel format"):
            prepare(Image.new(mode, (10, 10)), 224)

    def test_is_deterministic(self) -> None:
        source = Image.linear_gradient("L").convert("RGB")
        assert prepare(source, 50).tobytes() == prepare(source, 50).tobytes()


class TestToInputTensor:
    def test_nhwc_float_is_scaled_to_unit_range(self) -> None:
        tensor = to_input_tensor(Image.new("RGB", (8, 8), (255, 0, 51)))
        assert tensor.shape == (1, 8, 8, 3)
        assert tensor.dtype == np.float32
        np.testing.assert_allclose(tensor[0, 0, 0], [1.0, 0.0, 0.2], rtol=1e-6)

    def test_nchw_layout_is_planar(self) -> None:
        tensor = to_input_tensor(Image.new("RGB", (8, 4), (255, 0, 0)), layout="nchw")
        assert tensor.shape == (1, 3, 4, 8)
        assert (tensor[0, 0] == 1.0).all()
        assert (tensor[0, 1] == 0.0).all()

    def test_uint8_keeps_raw_bytes(self) -> None:
        tensor = to_input_tensor(Image.new("RGB", (4, 4), (10, 20, 30)), dtype="uint8")
        assert tensor.dtype == np.uint8
        assert tensor[0, 0, 0].tolist() == [10, 20, 30]

    def test_mean_and_std_are_applied(self) -> None:
        tensor = to_input_tensor(Image.new("RGB", (2, 2), (128, 128, 128)), mean=127.5, std=127.5)
        np.testing.assert_allclose(tensor, 0.5 / 127.5, rtol=1e-5)


class TestEncode:
    def test_returns_base64_jpeg(self) -> None:
        encoded = encode(make_image((40, 30)), quality=90)
        raw = base64.b64decode(encoded, validate=True)
        assert raw[:2] == b"\xff\xd8"
        with Image.open(io.BytesIO(raw)) as decoded:
            assert decoded.format == "JPEG"
            assert decoded.size == (40, 30)

    def test_output_is_ascii_without_newlines(self) -> None:
        encoded = encode(make_image((200, 200)))
        encoded.encode("ascii")
        assert "\n" not in encoded

    def test_rgba_is_flattened(self) -> None:
        raw = base64.b64decode(encode(Image.new("RGBA", (10, 10), (0, 0, 0, 0))))
        with Image.open(io.BytesIO(raw)) as decoded:
            assert decoded.mode == "RGB"

    def test_zero_dimension_raises(self) -> None:
        with pytest.raises(InvalidImageError):
            encode(Image.new("RGB", (0, 5)))


class TestDecodeImage:
    def test_decodes_png(self) -> None:
        decoded = decode_image(image_bytes(make_image((12, 7))))
        assert decoded.size == (12, 7)
        assert decoded.mode == "RGB"

    def test_cmyk_jpeg_is_converted(self) -> None:
        decoded = decode_image(image_bytes(Image.new("CMYK", (16, 9), (0, 255, 255, 0)), fmt="JPEG"))
        assert decoded.mode == "RGB"
        assert decoded.size == (16, 9)

    def test_16_bit_png_is_converted(self) -> None:
        source = Image.new("I;16", (8, 6))
        source.putpixel((0, 0), 65535)
        decoded = decode_image(image_bytes(source))
        assert decoded.mode == "RGB"
        assert decoded.size == (8, 6)
        assert decoded.getpixel((0, 0))[0] >= 250

    def test_garbage_raises(self) -> None:
        with pytest.raises(InvalidImageError, match="Cannot decode"):
            decode_image(b"fake image data")

    def test_too_many_pixels_raises(self) -> None:
        with pytest.raises(InvalidImageError, match="exceeds"):
            decode_image(image_bytes(make_image((100, 100))), max_pixels=9_999)
