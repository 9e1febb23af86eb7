"""
ScanNorm - Document capture normalization

Turns photographs of paper documents taken by a high-speed scanner into
flat, upright, evenly lit page images, plus the message model needed to
pick new captures out of the hardware service's responses.
"""

import sys

__version__ = "1.0.0"
__license__ = "GPL-3.0"


def main() -> int:
    """Main entry point; runs the command-line interface.

    Returns:
        The process exit code.
    """
    from scannorm.cli import main as cli_main

    return cli_main()


__all__ = ["main", "__version__", "__license__"]


if __name__ == "__main__":
    sys.exit(main())
