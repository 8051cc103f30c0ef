"""Main entry point for running graphcalc_pkg as a module.

This allows running graphcalc with:
    python -m graphcalc_pkg solve --category algebra "x^2-4=0"
    python -m graphcalc_pkg --version
"""

from __future__ import annotations

import sys

from .cli import main_entry

if __name__ == "__main__":
    sys.exit(main_entry())
