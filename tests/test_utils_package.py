"""Tests for the utils package exports."""

import scannorm.utils as utils
from scannorm.utils import _


def test_exports():
    assert sorted(utils.__all__) == ["_", "logger"]
    assert utils.logger.name == "scannorm"


def test_translate_returns_text():
    assert _("Normalize scanner captures") == "Normalize scanner captures"
