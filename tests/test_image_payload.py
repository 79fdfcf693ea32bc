import base64
import io

import pytest
from PIL import Image

from app.errors import ValidationError
from app.io.image_payload import (
    decode_base64_image,
    normalize_base64_image,
    normalize_image,
    strip_data_url,
)

from tests.helpers import image_base64, image_bytes


def test_strip_data_url():
    assert strip_data_url("data:image/png;base64,QUJD") == "QUJD"
    assert strip_data_url("  QUJD ") == "QUJD"


def test_small_image_is_reencoded_as_jpeg():
    normalized = normalize_image(image_bytes((64, 48), fmt="PNG"))

    assert (normalized.width, normalized.height) == (64, 48)
    assert normalized.source_format == "PNG"
    decoded = Image.open(io.BytesIO(base64.b64decode(normalized.base64)))
    assert decoded.format == "JPEG"


def test_large_image_is_downscaled_keeping_aspect_ratio():
    normalized = normalize_image(image_bytes((2000, 1000), fmt="JPEG"), max_dimension=1024)
    assert (normalized.width, normalized.height) == (1024, 512)


def test_rgba_image_is_converted():
    buf = io.BytesIO()
    Image.new("RGBA", (10, 10), (0, 0, 0, 0)).save(buf, format="PNG")
    assert normalize_image(buf.getvalue()).width == 10


def test_data_url_payload():
    normalized = normalize_base64_image(
        f"data:image/png;base64,{image_base64()}", max_bytes=1024 * 1024, max_dimension=1024,
    )
    assert normalized.width == 64


def test_base64_with_line_breaks_is_accepted():
    payload = image_base64()
    wrapped = "\n".join(payload[i:i + 76] for i in range(0, len(payload), 76))
    assert decode_base64_image(wrapped, max_bytes=1024 * 1024) == base64.b64decode(payload)


@pytest.mark.parametrize("payload", ["", "   ", "not base64 at all!", "data:image/png;base64,"])
def test_bad_base64_is_rejected(payload):
    with pytest.raises(ValidationError):
        normalize_base64_image(payload, max_bytes=1024 * 1024, max_dimension=1024)


def test_oversized_payload_is_rejected():
    with pytest.raises(ValidationError, match="too large"):
        decode_base64_image(image_base64((256, 256)), max_bytes=100)


def test_non_image_bytes_are_rejected():
    with pytest.raises(ValidationError):
        normalize_image(b"%PDF-1.4 definitely not an image")


def test_truncated_image_is_rejected():
    data = image_bytes((64, 64), fmt="PNG")
    with pytest.raises(ValidationError):
        normalize_image(data[: len(data) // 2])


def test_decompression_bomb_is_rejected(monkeypatch):
    # Pillow raises once the pixel count exceeds twice this limit
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    with pytest.raises(ValidationError, match="dimensions too large"):
        normalize_image(image_bytes((64, 48), fmt="PNG"))
