"""Contracts for the collaborators a lifecycle is wired with."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

from .models import DirectAnalysisOptions, Ecosystem, ProjectData, StatusMessage

# Value handed to the report panel when a lifecycle fails.
ERROR_REPORT = "error"


class Transport(Protocol):
    """HTTP transport used for submission, polling and token validation."""

    async def post(self, url: str, *, files: Any = None, headers: dict[str, str] | None = None) -> str: ...

    async def get(self, url: str, *, headers: dict[str, str] | None = None) -> Any: ...


class ProjectDataProvider(Protocol):
    """Resolves ecosystem-specific project data from a target path."""

    async def effective_pom(self, target_path: str) -> ProjectData: ...

    async def effective_package(self, target_path: str) -> ProjectData: ...

    async def effective_pypi(self, target_path: str) -> ProjectData: ...

    async def effective_golang(self, target_path: str) -> ProjectData: ...


class ManifestResolver(Protocol):
    """Workspace manifest resolution and payload construction."""

    async def trigger_manifest(self, workspace_root: str, data: ProjectData | None = None) -> None: ...

    async def build_payload(self, data: ProjectData, ecosystem: Ecosystem) -> Any: ...


class DirectAnalyzer(Protocol):
    """Synchronous stack analysis returning the rendered report."""

    async def stack_analysis(self, target_path: str, options: DirectAnalysisOptions) -> bytes: ...


class ProgressReporter(Protocol):
    def report(self, message: StatusMessage) -> None: ...


class ReportPanel(Protocol):
    """Result sink: shows the report, or :data:`ERROR_REPORT` after a failure."""

    def update(self, data: Any) -> None: ...


class Notifier(Protocol):
    def show_error(self, message: str) -> None: ...

    def show_info(self, message: str) -> None: ...


class ReportStore(Protocol):
    async def write(self, path: Path, content: bytes) -> Path: ...


__all__ = [
    "ERROR_REPORT",
    "DirectAnalyzer",
    "ManifestResolver",
    "Notifier",
    "ProgressReporter",
    "ProjectDataProvider",
    "ReportPanel",
    "ReportStore",
    "Transport",
]
