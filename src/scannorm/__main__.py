#!/usr/bin/env python3
"""
ScanNorm - Entry point for python -m scannorm

This module allows the package to be run as a module:
    python -m scannorm
"""

import sys

from scannorm import main

if __name__ == "__main__":
    sys.exit(main())
