"""Stack analysis — submit project manifests for dependency analysis and collect the report."""
from __future__ import annotations

__version__ = "0.1.0"
