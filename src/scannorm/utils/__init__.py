"""
ScanNorm - Utils Package

Utility modules for the application.
"""

from scannorm.utils.i18n import _
from scannorm.utils.logger import logger

__all__ = [
    "logger",
    "_",
]
