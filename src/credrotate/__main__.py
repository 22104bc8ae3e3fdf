"""Main entry point for credrotate.

Usage:
    python -m credrotate rotate --period 90days
    python -m credrotate --help
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
