"""Shared fixtures for all test suites."""
from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from stackanalysis.config import Settings
from stackanalysis.domain.models import Ecosystem, ProjectData
from stackanalysis.engine.orchestrator import StackAnalysisOrchestrator

HOST = "https://sa.example.com"
CRDA_HOST = "https://crda.example.com"
API_KEY = "key-123"


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep the developer's environment and .env out of the tests."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("UUID", raising=False)
    for name in ("HOST", "API_KEY", "CRDA_HOST", "CRDA_SNYK_TOKEN", "DEPENDENCY_ANALYSIS_REPORT_FILE_PATH"):
        monkeypatch.delenv(f"STACK_ANALYSIS_{name}", raising=False)


@pytest.fixture
def report_path(tmp_path: Path) -> Path:
    return tmp_path / "reports" / "nested" / "report.html"


@pytest.fixture
def settings(report_path: Path) -> Settings:
    """Three poll attempts at a one second interval."""
    return Settings(
        host=HOST,
        api_key=API_KEY,
        crda_host=CRDA_HOST,
        crda_snyk_token="",
        dependency_analysis_report_file_path=str(report_path),
        request_timeout_seconds=3.0,
        poll_interval_seconds=1.0,
    )


@pytest.fixture
def sleep() -> AsyncMock:
    """Stand-in for asyncio.sleep that returns immediately and records each wait."""
    return AsyncMock(return_value=None)


@pytest.fixture
def transport() -> AsyncMock:
    t = AsyncMock()
    t.post = AsyncMock(return_value="job-42")
    t.get = AsyncMock(return_value={"report": "ready"})
    return t


@pytest.fixture
def project_data(tmp_path: Path) -> ProjectData:
    return ProjectData(Ecosystem.NPM, str(tmp_path), {"package.json": b'{"name": "demo"}'})


@pytest.fixture
def data_provider(project_data: ProjectData) -> AsyncMock:
    provider = AsyncMock()
    provider.effective_pom = AsyncMock(return_value=project_data)
    provider.effective_package = AsyncMock(return_value=project_data)
    provider.effective_pypi = AsyncMock(return_value=project_data)
    provider.effective_golang = AsyncMock(return_value=project_data)
    return provider


@pytest.fixture
def manifests() -> AsyncMock:
    resolver = AsyncMock()
    resolver.trigger_manifest = AsyncMock(return_value=None)
    resolver.build_payload = AsyncMock(return_value=[("manifest[]", ("package.json", b"{}", "application/json"))])
    return resolver


@pytest.fixture
def direct_analyzer() -> AsyncMock:
    analyzer = AsyncMock()
    analyzer.stack_analysis = AsyncMock(return_value=b"<html>report</html>")
    return analyzer


@pytest.fixture
def notifier() -> MagicMock:
    return MagicMock()


@pytest.fixture
def report_panel() -> MagicMock:
    return MagicMock()


@pytest.fixture
def progress() -> MagicMock:
    return MagicMock()


@pytest.fixture
def orchestrator(
    settings: Settings,
    transport: AsyncMock,
    data_provider: AsyncMock,
    manifests: AsyncMock,
    direct_analyzer: AsyncMock,
    notifier: MagicMock,
    report_panel: MagicMock,
    progress: MagicMock,
    sleep: AsyncMock,
) -> StackAnalysisOrchestrator:
    return StackAnalysisOrchestrator(
        transport=transport,
        data_provider=data_provider,
        manifests=manifests,
        direct_analyzer=direct_analyzer,
        notifier=notifier,
        report_panel=report_panel,
        progress=progress,
        settings_factory=lambda: settings,
        sleep=sleep,
    )
