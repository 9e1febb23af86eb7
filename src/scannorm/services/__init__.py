"""
ScanNorm - Services Package

Pipeline stages, the background runner and the hardware message model.
"""

from scannorm.services.capture_runner import CaptureOutcome, CaptureRunner
from scannorm.services.pipeline import DocumentPipeline, normalize_capture
from scannorm.services.pipeline_config import PipelineConfig

__all__ = [
    "CaptureOutcome",
    "CaptureRunner",
    "DocumentPipeline",
    "PipelineConfig",
    "normalize_capture",
]
