"""
Module entry point.

Usage::

    python -m preflight_validator validate [options]
    python -m preflight_validator list [options]
"""

from __future__ import annotations

import sys

from preflight_validator.cli import main

if __name__ == "__main__":
    sys.exit(main())
