"""Stack analysis engine: resolver, poll loop, orchestrator, token validation."""
from __future__ import annotations

from .orchestrator import LifecycleProgress, StackAnalysisOrchestrator, parse_job_handle
from .poller import PollLoop, PollTimer, is_pending
from .resolver import build_request, parse_ecosystem, resolve
from .token import TokenValidator

__all__ = [
    "LifecycleProgress",
    "PollLoop",
    "PollTimer",
    "StackAnalysisOrchestrator",
    "TokenValidator",
    "build_request",
    "is_pending",
    "parse_ecosystem",
    "parse_job_handle",
    "resolve",
]
