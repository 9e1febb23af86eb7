"""Tests for the exception hierarchy."""

import pytest

from scannorm.utils.exceptions import (
    BoundaryNotFound,
    ConfigurationError,
    DecodeError,
    DegenerateQuad,
    EncodeError,
    ProcessTimeoutError,
    ProtocolError,
    ScanNormError,
    ValidationError,
)


@pytest.mark.parametrize(
    "error",
    [
        DecodeError("bad header"),
        EncodeError("disk full"),
        BoundaryNotFound("quad"),
        DegenerateQuad([(0, 0)] * 4),
        ConfigurationError("fill_color"),
        ValidationError("rectangle"),
        ProtocolError("bad"),
        ProcessTimeoutError("highCamera", 1.5),
    ],
)
def test_all_derive_from_base(error):
    assert isinstance(error, ScanNormError)


class TestMessages:
    def test_decode_error_details(self):
        err = DecodeError("truncated", size_bytes=40)
        assert str(err) == "Cannot decode image: truncated (size=40)"

    def test_boundary_not_found_reason(self):
        err = BoundaryNotFound("bounding_box", "empty mask")
        assert err.strategy == "bounding_box"
        assert str(err).endswith(": empty mask")

    def test_degenerate_quad_corners(self):
        err = DegenerateQuad([(1, 2), (3, 4), (5, 6), (7, 8)], "collinear")
        assert err.corners[2] == (5, 6)
        assert "collinear" in str(err)
        assert "(7.0,8.0)" in str(err)

    def test_configuration_error(self):
        err = ConfigurationError("jpeg_quality", "must be within 1-100")
        assert str(err) == "Configuration error for 'jpeg_quality': must be within 1-100"

    def test_protocol_error_truncates_raw(self):
        err = ProtocolError("invalid JSON", raw="x" * 200)
        assert len(err.details) < 100

    def test_timeout(self):
        err = ProcessTimeoutError("highCamera", 2.0)
        assert err.timeout_seconds == 2.0
        assert "highCamera" in str(err)
