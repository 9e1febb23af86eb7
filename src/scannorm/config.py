#!/usr/bin/env python3
"""
ScanNorm - Configuration Module

This module contains application constants and paths used by the package.
"""

import logging
import os
from typing import Final

# ============================================================================
# Application Constants
# ============================================================================

APP_NAME: Final[str] = "ScanNorm"
APP_ID: Final[str] = "scannorm"
APP_VERSION: Final[str] = "1.0.0"
APP_DESCRIPTION: Final[str] = "Normalize photographed documents from a high-speed scanner"


# ============================================================================
# Configuration Directory
# ============================================================================

CONFIG_DIR: Final[str] = os.path.expanduser("~/.config/scannorm")
CONFIG_FILE_PATH: Final[str] = os.path.join(CONFIG_DIR, "settings.json")


# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL: int = logging.INFO
LOG_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT: Final[str] = "%H:%M:%S"
LOGGER_NAME: Final[str] = "scannorm"


# ============================================================================
# Capture Defaults
# ============================================================================

DEFAULT_DOWNLOAD_PURPOSE: Final[str] = "scanner-photo"
JPEG_DATA_URL_PREFIX: Final[str] = "data:image/jpeg;base64,"
# Response data fields that carry a freshly captured still
PHOTO_FIELDS: Final[tuple[str, ...]] = ("photoImg",)
