"""Domain types and collaborator contracts."""
from __future__ import annotations

from .models import (
    AnalysisFailure,
    AnalysisOutcome,
    AnalysisRequest,
    AnalysisSuccess,
    AnalysisTimeout,
    DirectAnalysisOptions,
    Ecosystem,
    JobHandle,
    PollState,
    ProjectData,
    RequestOptions,
    ResolvedTarget,
    StatusMessage,
    SubmissionOptions,
    Variant,
)

__all__ = [
    "AnalysisFailure",
    "AnalysisOutcome",
    "AnalysisRequest",
    "AnalysisSuccess",
    "AnalysisTimeout",
    "DirectAnalysisOptions",
    "Ecosystem",
    "JobHandle",
    "PollState",
    "ProjectData",
    "RequestOptions",
    "ResolvedTarget",
    "StatusMessage",
    "SubmissionOptions",
    "Variant",
]
