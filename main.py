"""Convenience entry point to run the cipherstore command line.

Allows running `python main.py put ...` from the project root without installing.
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the src/ directory is on sys.path so `import cipherstore` works
ROOT = Path(__file__).resolve().parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from cipherstore.frontend.cli.app import main


if __name__ == "__main__":
    sys.exit(main())
