"""Root conftest — add src/ to sys.path so tests resolve package imports."""
from __future__ import annotations

import sys
from pathlib import Path

# Insert the src directory at the front of sys.path so that
# ``from stackanalysis.engine.poller import …`` works without an install.
_src = str(Path(__file__).resolve().parent / "src")
if _src not in sys.path:
    sys.path.insert(0, _src)
