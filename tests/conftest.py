"""Shared pytest configuration for probefinder tests."""

import sys
from pathlib import Path

# Import the package from the source tree and the fakes from this directory
ROOT = Path(__file__).parent.parent
for path in (ROOT, Path(__file__).parent):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))
