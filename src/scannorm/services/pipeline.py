"""
ScanNorm - Document Pipeline Module

Composes the normalization stages: decode, detect the page, rectify,
pick the upright rotation, flatten the illumination, apply the tone curve
and encode. Every stage between decode and encode fails soft: its error
is logged, it is recorded as degraded and the previous buffer moves on.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

from scannorm.services.boundary_detection import BoundaryDetector
from scannorm.services.codec import (
    bytes_to_data_url,
    decode,
    encode,
    is_data_url,
    payload_to_bytes,
)
from scannorm.services.enhance import IlluminationNormalizer, ToneMapper
from scannorm.services.models import PipelineResult, PixelBuffer
from scannorm.services.orientation import OrientationSelector
from scannorm.services.perspective_document import Rectifier
from scannorm.services.pipeline_config import PipelineConfig
from scannorm.utils.exceptions import DecodeError, EncodeError
from scannorm.utils.format_utils import format_elapsed_ms

logger = logging.getLogger(__name__)


class DocumentPipeline:
    """Capture normalization pipeline.

    The pipeline is stateless between runs; one instance can serve several
    threads.
    """

    def __init__(self, config: PipelineConfig | None = None) -> None:
        """Initialize the pipeline.

        Args:
            config: Stage settings; defaults are used when omitted

        Raises:
            ConfigurationError: if ``config`` is invalid
        """
        self.config = (config or PipelineConfig()).validate()
        self.detector = BoundaryDetector(self.config)
        self.rectifier = Rectifier(self.config)
        self.orientation = OrientationSelector(self.config)
        self.illumination = IlluminationNormalizer(self.config)
        self.tone = ToneMapper(self.config)

    def _run_stage(
        self, name: str, result: PipelineResult, func: Callable[..., Any], *args: Any
    ) -> Any | None:
        started = time.perf_counter()
        try:
            output = func(*args)
        except Exception as e:
            logger.warning(f"Stage '{name}' failed, skipping: {e}")
            result.degraded.append(name)
            return None
        result.applied.append(name)
        logger.debug(f"Stage '{name}' took {format_elapsed_ms(time.perf_counter() - started)}")
        return output

    def run(self, buffer: PixelBuffer) -> PipelineResult:
        """Run the in-memory stages on a decoded buffer.

        Never raises for image content; failed stages are listed in
        ``PipelineResult.degraded``.
        """
        cfg = self.config
        result = PipelineResult(buffer=buffer)

        boundary = self._run_stage("boundary", result, self.detector.detect, result.buffer)
        if boundary is not None:
            result.boundary = boundary
            rectified = self._run_stage(
                "rectify", result, self.rectifier.rectify, result.buffer, boundary
            )
            if rectified is not None:
                result.buffer = rectified

        if cfg.enable_orientation:
            orientation = self._run_stage(
                "orientation", result, self.orientation.select, result.buffer
            )
            if orientation is not None:
                result.orientation = orientation
                result.buffer = orientation.buffer

        if cfg.enable_illumination:
            flattened = self._run_stage(
                "illumination", result, self.illumination.apply, result.buffer
            )
            if flattened is not None:
                result.buffer = flattened

        if cfg.enable_tone_curve:
            toned = self._run_stage("tone", result, self.tone.apply, result.buffer)
            if toned is not None:
                result.buffer = toned

        if result.degraded:
            logger.info(f"Pipeline finished with degraded stages: {', '.join(result.degraded)}")
        return result

    def _process(self, data: bytes) -> bytes | None:
        started = time.perf_counter()
        try:
            buffer = decode(data)
        except DecodeError as e:
            logger.error(f"Decode failed, returning input unchanged: {e}")
            return None

        result = self.run(buffer)

        try:
            encoded = encode(result.buffer, self.config.jpeg_quality)
        except EncodeError as e:
            logger.error(f"Encode failed, returning input unchanged: {e}")
            return None

        logger.info(
            f"Normalized {buffer.width}x{buffer.height} -> "
            f"{result.buffer.width}x{result.buffer.height} "
            f"in {format_elapsed_ms(time.perf_counter() - started)}"
        )
        return encoded

    def process_bytes(self, data: bytes) -> bytes:
        """Normalize an encoded still; the input comes back on total failure."""
        encoded = self._process(data)
        return data if encoded is None else encoded

    def normalize_capture(self, payload: bytes | str) -> bytes | str:
        """Normalize a capture in whatever form it arrived.

        Raw bytes come back as JPEG bytes, a ``data:`` URL as a JPEG data
        URL and a bare base64 string as bare base64. On decode or encode
        failure the payload is returned untouched.
        """
        if not isinstance(payload, str):
            return self.process_bytes(bytes(payload))

        try:
            raw = payload_to_bytes(payload)
        except DecodeError as e:
            logger.error(f"Decode failed, returning input unchanged: {e}")
            return payload

        encoded = self._process(raw)
        if encoded is None:
            return payload
        if is_data_url(payload.strip()):
            return bytes_to_data_url(encoded)
        return bytes_to_data_url(encoded, prefix="")


def normalize_capture(
    payload: bytes | str, config: PipelineConfig | None = None
) -> bytes | str:
    """One-shot convenience wrapper around DocumentPipeline.normalize_capture."""
    return DocumentPipeline(config).normalize_capture(payload)
