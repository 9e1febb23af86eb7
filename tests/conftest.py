"""Pytest configuration for scannorm tests.

Synthetic capture builders shared by the test modules, plus a fixture that
provides the real OpenCV module for cross-checking the numpy filters.
Tests using ``real_cv2`` are skipped when OpenCV is not installed.
"""

import io
import math

import numpy as np
import pytest
from PIL import Image, ImageDraw

from scannorm.services.models import PixelBuffer

DARK = (30, 30, 30)
PAPER = (235, 235, 235)
INK = (40, 40, 40)


@pytest.fixture
def real_cv2():
    """Provide the real cv2 module, skipping when unavailable."""
    return pytest.importorskip("cv2")


def make_buffer(height, width, color=(128, 128, 128), channels=3):
    """Uniform buffer of one colour."""
    arr = np.empty((height, width, channels), dtype=np.uint8)
    arr[:, :, :3] = color
    if channels == 4:
        arr[:, :, 3] = 255
    return PixelBuffer(arr)


def polygon_buffer(height, width, corners, fg=PAPER, bg=DARK):
    """Background frame with one filled polygon."""
    img = Image.new("RGB", (width, height), bg)
    ImageDraw.Draw(img).polygon([tuple(map(float, c)) for c in corners], fill=fg)
    return PixelBuffer(np.array(img, dtype=np.uint8))


def striped_page(height, width, period=12, line=4, margin=10):
    """White page with dark horizontal text-like rows inside a margin."""
    arr = np.empty((height, width, 3), dtype=np.uint8)
    arr[:] = PAPER
    for y in range(margin, height - margin - line, period):
        arr[y : y + line, margin : width - margin] = INK
    return arr


def rotated_page_capture(
    canvas=(1200, 1000), page=(594, 420), angle_deg=15.0, bg=DARK
):
    """Striped A4-proportioned page rotated about the canvas centre.

    Args:
        canvas: (height, width) of the capture
        page: (height, width) of the page before rotation
        angle_deg: Clockwise rotation of the page in image coordinates

    Returns:
        (PixelBuffer, expected corners TL/TR/BR/BL as a 4x2 array)
    """
    ch, cw = canvas
    ph, pw = page
    page_img = Image.fromarray(striped_page(ph, pw, margin=40))
    # PIL rotates counter-clockwise for positive angles
    rotated = page_img.rotate(-angle_deg, resample=Image.BILINEAR, expand=True, fillcolor=bg)

    frame = Image.new("RGB", (cw, ch), bg)
    ox = (cw - rotated.width) // 2
    oy = (ch - rotated.height) // 2
    frame.paste(rotated, (ox, oy))

    theta = math.radians(angle_deg)
    cx = ox + rotated.width / 2.0
    cy = oy + rotated.height / 2.0
    corners = []
    for x, y in ((-pw / 2, -ph / 2), (pw / 2, -ph / 2), (pw / 2, ph / 2), (-pw / 2, ph / 2)):
        corners.append(
            (
                cx + x * math.cos(theta) - y * math.sin(theta),
                cy + x * math.sin(theta) + y * math.cos(theta),
            )
        )
    return PixelBuffer(np.array(frame, dtype=np.uint8)), np.array(corners)


def jpeg_bytes(buffer, quality=95):
    out = io.BytesIO()
    Image.fromarray(buffer.color).save(out, format="JPEG", quality=quality)
    return out.getvalue()


def png_bytes(array):
    out = io.BytesIO()
    Image.fromarray(array).save(out, format="PNG")
    return out.getvalue()
