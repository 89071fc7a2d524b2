"""Domain model for stack analysis lifecycles.

Ecosystem tags, analysis variants, the immutable per-invocation request,
per-call option structs, the poll state and the tagged terminal outcome.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, NewType, Union

from pydantic import BaseModel, ConfigDict, Field

from stackanalysis.shared.exceptions import StackAnalysisError

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Ecosystem(StrEnum):
    """Package-manager domains that can be analysed."""

    MAVEN = "maven"
    NPM = "npm"
    PYPI = "pypi"
    GOLANG = "golang"

    @property
    def uses_direct_analysis(self) -> bool:
        """Maven goes through the synchronous analysis call; the rest submit and poll."""
        return self is Ecosystem.MAVEN


class Variant(StrEnum):
    """Which project data resolution to run for an ecosystem."""

    EFFECTIVE_POM = "EffectivePom"
    EFFECTIVE_PACKAGE = "EffectivePackage"
    EFFECTIVE_PYPI = "EffectivePypi"
    EFFECTIVE_GOLANG = "EffectiveGolang"


class StatusMessage(StrEnum):
    """Progress messages emitted at lifecycle phase transitions."""

    RESOLVING = "Resolving application dependencies..."
    ANALYZING = "Analyzing application dependencies..."
    SUCCESS = "Dependency analysis report generated"
    FAILURE_RESOLVE = "Failed to resolve dependencies"
    FAILURE_ANALYZE = "Failed to analyze application dependencies"

    @property
    def is_terminal(self) -> bool:
        return self in (StatusMessage.SUCCESS, StatusMessage.FAILURE_RESOLVE, StatusMessage.FAILURE_ANALYZE)


JobHandle = NewType("JobHandle", str)


# ---------------------------------------------------------------------------
# Request & option models
# ---------------------------------------------------------------------------


class ResolvedTarget(BaseModel):
    """Manifest location and analysis variant derived for an ecosystem."""

    model_config = ConfigDict(frozen=True)

    target_path: str
    variant: Variant


class AnalysisRequest(BaseModel):
    """One stack analysis invocation; immutable after construction.

    Attributes:
        ecosystem: Ecosystem being analysed.
        target_path: Manifest file (maven) or project directory.
        workspace_root: Root of the workspace the manifest belongs to.
        variant: Project data resolution to run.
    """

    model_config = ConfigDict(frozen=True)

    ecosystem: Ecosystem
    target_path: str = Field(..., min_length=1)
    workspace_root: str
    variant: Variant

    @property
    def flight_key(self) -> tuple[str, str]:
        """Single-flight key: at most one lifecycle per (ecosystem, target)."""
        return (self.ecosystem.value, self.target_path)


@dataclass(frozen=True)
class RequestOptions:
    """Options for a call to the analysis service."""

    correlation_id: str | None = None
    token: str | None = None
    transitive_report: bool = False

    TOKEN_HEADER = "Crda-Snyk-Token"

    def headers(self) -> dict[str, str]:
        out: dict[str, str] = {}
        if self.token:
            out[self.TOKEN_HEADER] = self.token
        if self.transitive_report:
            out["showTransitiveReport"] = "true"
        if self.correlation_id:
            out["uuid"] = self.correlation_id
        return out


@dataclass(frozen=True)
class DirectAnalysisOptions:
    """Options for the synchronous (maven) analysis call."""

    token: str | None = None

    TOKEN_KEY = "CRDA_SNYK_TOKEN"

    def as_mapping(self) -> dict[str, str]:
        """The token appears under ``CRDA_SNYK_TOKEN`` only when non-empty."""
        if self.token:
            return {self.TOKEN_KEY: self.token}
        return {}


@dataclass(frozen=True)
class SubmissionOptions:
    """One network call: where to send it, what to send, which headers."""

    endpoint_uri: str
    headers: dict[str, str] = field(default_factory=dict)
    payload: Any = None


@dataclass
class PollState:
    """Mutable state of one poll loop."""

    handle: JobHandle
    remaining_attempts: int
    interval_seconds: float
    ticks: int = 0


@dataclass(frozen=True)
class ProjectData:
    """Resolved project data for one ecosystem.

    Attributes:
        ecosystem: Ecosystem the data was resolved for.
        target_path: Directory or manifest that was resolved.
        manifests: Mapping of manifest file name to raw content.
    """

    ecosystem: Ecosystem
    target_path: str
    manifests: dict[str, bytes] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AnalysisSuccess:
    """The analysis completed; ``report`` is the service payload or report bytes."""

    report: Any


@dataclass(frozen=True)
class AnalysisFailure:
    """The lifecycle aborted with ``error``."""

    error: StackAnalysisError


@dataclass(frozen=True)
class AnalysisTimeout:
    """The job was still pending after ``attempts`` poll ticks."""

    attempts: int


AnalysisOutcome = Union[AnalysisSuccess, AnalysisFailure, AnalysisTimeout]


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
