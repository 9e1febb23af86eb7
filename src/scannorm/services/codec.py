"""
Still-image decoding and JPEG encoding.

Uses PIL/Pillow for the codec itself; everything downstream works on
numpy-backed PixelBuffers. Payloads arrive from the hardware service as
bare base64, as ``data:`` URLs, or as raw bytes.
"""

import base64
import binascii
import io
import logging

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from scannorm.config import JPEG_DATA_URL_PREFIX
from scannorm.services.models import PixelBuffer
from scannorm.utils.exceptions import DecodeError, EncodeError

logger = logging.getLogger(__name__)

_ALPHA_MODES = ("RGBA", "LA", "PA")


def decode(data: bytes) -> PixelBuffer:
    """Decode an encoded still into an RGB or RGBA PixelBuffer.

    EXIF orientation is applied so the buffer matches what a viewer shows.

    Args:
        data: Encoded image bytes (JPEG, PNG, ...)

    Returns:
        Decoded buffer, 4 channels when the image carries alpha

    Raises:
        DecodeError: on empty or malformed input, or zero dimensions
    """
    if not data:
        raise DecodeError("empty payload", size_bytes=0)

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            upright = ImageOps.exif_transpose(img)
            has_alpha = upright.mode in _ALPHA_MODES or (
                upright.mode == "P" and "transparency" in upright.info
            )
            converted = upright.convert("RGBA" if has_alpha else "RGB")
            if converted.width == 0 or converted.height == 0:
                raise DecodeError("zero-sized image", size_bytes=len(data))
            array = np.asarray(converted, dtype=np.uint8)
    except DecodeError:
        raise
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(str(e) or type(e).__name__, size_bytes=len(data)) from e

    logger.debug(f"Decoded {array.shape[1]}x{array.shape[0]} image, {array.shape[2]} channels")
    return PixelBuffer(np.ascontiguousarray(array))


def normalize_quality(quality: float) -> int:
    """Accept 0.9-style fractions or 90-style percentages; return 1-100.

    Raises:
        EncodeError: for values outside the accepted ranges
    """
    q = float(quality)
    if 0 < q <= 1:
        q *= 100
    q = int(round(q))
    if not 1 <= q <= 100:
        raise EncodeError(f"quality {quality!r} out of range")
    return q


def encode(buffer: PixelBuffer, quality: float = 0.92) -> bytes:
    """Serialize a buffer to baseline JPEG without resizing.

    Alpha is dropped since JPEG carries none.

    Args:
        buffer: Image to encode
        quality: 0-1 fraction or 1-100 percentage

    Returns:
        JPEG bytes

    Raises:
        EncodeError: on invalid quality or serialization failure
    """
    q = normalize_quality(quality)
    try:
        img = Image.fromarray(np.ascontiguousarray(buffer.color))
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=q)
    except (OSError, ValueError, TypeError) as e:
        raise EncodeError(str(e) or type(e).__name__) from e

    encoded = out.getvalue()
    logger.debug(f"Encoded {buffer.width}x{buffer.height} JPEG at quality {q}: {len(encoded)} bytes")
    return encoded


def is_data_url(payload: str) -> bool:
    return payload.startswith("data:")


def payload_to_bytes(payload: bytes | str) -> bytes:
    """Turn raw bytes, a bare base64 string or a ``data:`` URL into bytes.

    Raises:
        DecodeError: on malformed base64 or a non-base64 data URL
    """
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return bytes(payload)

    text = payload.strip()
    if is_data_url(text):
        header, sep, body = text.partition(",")
        if not sep or not header.endswith(";base64"):
            raise DecodeError("data URL is not base64-encoded")
        text = body

    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"invalid base64: {e}") from e


def bytes_to_data_url(data: bytes, prefix: str = JPEG_DATA_URL_PREFIX) -> str:
    return prefix + base64.b64encode(data).decode("ascii")


def decode_payload(payload: bytes | str) -> PixelBuffer:
    """Decode any accepted payload form into a PixelBuffer."""
    return decode(payload_to_bytes(payload))
