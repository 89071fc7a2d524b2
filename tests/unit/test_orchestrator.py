"""Tests for the StackAnalysisOrchestrator lifecycle.

Covers both strategies, status transitions, the central error handler,
report persistence and the single-flight guard.
"""
from __future__ import annotations

import asyncio
import os
from unittest.mock import MagicMock, call

import httpx
import pytest

from stackanalysis.domain.models import (
    AnalysisFailure,
    AnalysisSuccess,
    AnalysisTimeout,
    DirectAnalysisOptions,
    Ecosystem,
    StatusMessage,
)
from stackanalysis.domain.protocols import ERROR_REPORT
from stackanalysis.engine.orchestrator import LifecycleProgress, parse_job_handle
from stackanalysis.engine.resolver import build_request
from stackanalysis.shared.exceptions import (
    ConfigurationError,
    InvalidEcosystemError,
    PersistenceError,
    PollTimeoutError,
    PollTransportError,
    ResolutionError,
    SubmissionError,
)

pytestmark = pytest.mark.asyncio

PENDING = {"error": "in progress"}
REPORT = {"request_id": "job-42", "result": []}


def _statuses(progress: MagicMock) -> list[StatusMessage]:
    return [c.args[0] for c in progress.report.call_args_list]


# ---------------------------------------------------------------------------
# Submit-then-poll strategy
# ---------------------------------------------------------------------------


class TestSubmitThenPoll:

    async def test_success_delivers_report(
        self, orchestrator, tmp_path, transport, report_panel, progress, notifier
    ) -> None:
        transport.get.side_effect = [PENDING, REPORT]
        outcome = await orchestrator.process_stack_analyses(str(tmp_path), "npm")

        assert outcome == AnalysisSuccess(REPORT)
        report_panel.update.assert_called_once_with(REPORT)
        notifier.show_error.assert_not_called()
        assert _statuses(progress) == [
            StatusMessage.RESOLVING,
            StatusMessage.ANALYZING,
            StatusMessage.SUCCESS,
        ]

    async def test_submission_request(self, orchestrator, tmp_path, transport, manifests, monkeypatch) -> None:
        monkeypatch.setenv("UUID", "corr-1")
        await orchestrator.process_stack_analyses(str(tmp_path), "pypi")

        transport.post.assert_awaited_once_with(
            "https://sa.example.com/api/v2/stack-analyses?user_key=key-123",
            files=manifests.build_payload.return_value,
            headers={"showTransitiveReport": "true", "uuid": "corr-1"},
        )
        transport.get.assert_awaited_once_with(
            "https://sa.example.com/api/v2/stack-analyses/job-42?user_key=key-123",
            headers={"uuid": "corr-1"},
        )

    async def test_provider_is_dispatched_by_variant(self, orchestrator, tmp_path, data_provider) -> None:
        await orchestrator.process_stack_analyses(str(tmp_path), "golang")
        data_provider.effective_golang.assert_awaited_once_with(str(tmp_path))
        data_provider.effective_package.assert_not_awaited()
        data_provider.effective_pypi.assert_not_awaited()

    async def test_manifests_resolved_before_payload(
        self, orchestrator, tmp_path, data_provider, manifests, project_data
    ) -> None:
        order = MagicMock()

        def provide(path):
            order.provider()
            return project_data

        def build(*args):
            order.payload()
            return []

        data_provider.effective_package.side_effect = provide
        manifests.trigger_manifest.side_effect = lambda *a: order.trigger()
        manifests.build_payload.side_effect = build

        await orchestrator.process_stack_analyses(str(tmp_path), "npm")

        assert order.mock_calls == [call.provider(), call.trigger(), call.payload()]
        manifests.trigger_manifest.assert_awaited_once_with(str(tmp_path), project_data)
        manifests.build_payload.assert_awaited_once_with(project_data, Ecosystem.NPM)

    async def test_json_job_id(self, orchestrator, tmp_path, transport) -> None:
        transport.post.return_value = '{"id": "abc-1", "status": "success"}'
        await orchestrator.process_stack_analyses(str(tmp_path), "npm")
        assert "/stack-analyses/abc-1?" in transport.get.await_args.args[0]

    async def test_timeout(self, orchestrator, tmp_path, transport, report_panel, notifier, progress, sleep) -> None:
        transport.get.return_value = PENDING
        outcome = await orchestrator.process_stack_analyses(str(tmp_path), "npm")

        assert outcome == AnalysisTimeout(attempts=3)
        assert transport.get.await_count == 3
        assert sleep.await_count == 3
        report_panel.update.assert_called_once_with(ERROR_REPORT)
        notifier.show_error.assert_called_once_with(PollTimeoutError().message)
        assert _statuses(progress)[-1] == StatusMessage.FAILURE_ANALYZE

    async def test_poll_transport_error(self, orchestrator, tmp_path, transport, report_panel, notifier) -> None:
        transport.get.side_effect = [PENDING, httpx.ReadTimeout("timed out"), REPORT]
        outcome = await orchestrator.process_stack_analyses(str(tmp_path), "npm")

        assert isinstance(outcome, AnalysisFailure)
        assert isinstance(outcome.error, PollTransportError)
        assert transport.get.await_count == 2
        report_panel.update.assert_called_once_with(ERROR_REPORT)
        notifier.show_error.assert_called_once()

    async def test_submission_error(self, orchestrator, tmp_path, transport, progress, notifier) -> None:
        transport.post.side_effect = httpx.ConnectError("refused")
        outcome = await orchestrator.process_stack_analyses(str(tmp_path), "npm")

        assert isinstance(outcome, AnalysisFailure)
        assert isinstance(outcome.error, SubmissionError)
        assert isinstance(outcome.error.__cause__, httpx.ConnectError)
        transport.get.assert_not_awaited()
        assert _statuses(progress)[-1] == StatusMessage.FAILURE_ANALYZE
        assert "refused" in notifier.show_error.call_args.args[0]

    async def test_empty_job_id_is_submission_error(self, orchestrator, tmp_path, transport) -> None:
        transport.post.return_value = "   "
        outcome = await orchestrator.process_stack_analyses(str(tmp_path), "npm")
        assert isinstance(outcome, AnalysisFailure)
        assert isinstance(outcome.error, SubmissionError)
        transport.get.assert_not_awaited()

    async def test_resolution_error(self, orchestrator, tmp_path, data_provider, transport, progress, report_panel) -> None:
        data_provider.effective_package.side_effect = ResolutionError("package.json not found")
        outcome = await orchestrator.process_stack_analyses(str(tmp_path), "npm")

        assert isinstance(outcome, AnalysisFailure)
        assert outcome.error.message == "package.json not found"
        transport.post.assert_not_awaited()
        assert _statuses(progress) == [StatusMessage.RESOLVING, StatusMessage.FAILURE_RESOLVE]
        report_panel.update.assert_called_once_with(ERROR_REPORT)

    async def test_unexpected_resolution_failure_is_wrapped(self, orchestrator, tmp_path, manifests) -> None:
        manifests.build_payload.side_effect = KeyError("manifest")
        outcome = await orchestrator.process_stack_analyses(str(tmp_path), "npm")
        assert isinstance(outcome, AnalysisFailure)
        assert isinstance(outcome.error, ResolutionError)


# ---------------------------------------------------------------------------
# Direct strategy
# ---------------------------------------------------------------------------


class TestDirect:

    async def test_report_written_and_delivered(
        self, orchestrator, tmp_path, report_path, direct_analyzer, report_panel, progress, transport
    ) -> None:
        assert not report_path.parent.exists()
        outcome = await orchestrator.process_stack_analyses(str(tmp_path), "maven")

        assert outcome == AnalysisSuccess(b"<html>report</html>")
        assert report_path.read_bytes() == b"<html>report</html>"
        report_panel.update.assert_called_once_with(b"<html>report</html>")
        direct_analyzer.stack_analysis.assert_awaited_once_with(
            os.path.join(str(tmp_path), "pom.xml"), DirectAnalysisOptions(token=None)
        )
        transport.post.assert_not_awaited()
        assert _statuses(progress) == [
            StatusMessage.RESOLVING,
            StatusMessage.ANALYZING,
            StatusMessage.SUCCESS,
        ]

    async def test_existing_report_is_overwritten(self, orchestrator, tmp_path, report_path) -> None:
        report_path.parent.mkdir(parents=True)
        report_path.write_bytes(b"old report that is longer")
        await orchestrator.process_stack_analyses(str(tmp_path), "maven")
        assert report_path.read_bytes() == b"<html>report</html>"

    async def test_token_passed_when_configured(self, orchestrator, tmp_path, settings, direct_analyzer) -> None:
        settings.crda_snyk_token = "snyk-abc"
        await orchestrator.process_stack_analyses(str(tmp_path), "maven")
        options = direct_analyzer.stack_analysis.await_args.args[1]
        assert options.as_mapping() == {"CRDA_SNYK_TOKEN": "snyk-abc"}

    async def test_manifest_trigger_runs_first(self, orchestrator, tmp_path, manifests, direct_analyzer) -> None:
        await orchestrator.process_stack_analyses(str(tmp_path), "maven")
        manifests.trigger_manifest.assert_awaited_once_with(str(tmp_path))

    async def test_analysis_failure_not_retried(
        self, orchestrator, tmp_path, direct_analyzer, report_path, report_panel, progress
    ) -> None:
        direct_analyzer.stack_analysis.side_effect = RuntimeError("crda exploded")
        outcome = await orchestrator.process_stack_analyses(str(tmp_path), "maven")

        assert isinstance(outcome, AnalysisFailure)
        assert isinstance(outcome.error, SubmissionError)
        assert direct_analyzer.stack_analysis.await_count == 1
        assert not report_path.exists()
        report_panel.update.assert_called_once_with(ERROR_REPORT)
        assert _statuses(progress)[-1] == StatusMessage.FAILURE_RESOLVE

    async def test_persistence_failure(self, orchestrator, tmp_path, settings, report_panel, progress) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        settings.dependency_analysis_report_file_path = str(blocker / "report.html")

        outcome = await orchestrator.process_stack_analyses(str(tmp_path), "maven")

        assert isinstance(outcome, AnalysisFailure)
        assert isinstance(outcome.error, PersistenceError)
        report_panel.update.assert_called_once_with(ERROR_REPORT)
        assert _statuses(progress)[-1] == StatusMessage.FAILURE_ANALYZE

    async def test_no_panel_is_fine(self, orchestrator, tmp_path, report_path) -> None:
        orchestrator.report_panel = None
        outcome = await orchestrator.process_stack_analyses(str(tmp_path), "maven")
        assert isinstance(outcome, AnalysisSuccess)
        assert report_path.exists()


# ---------------------------------------------------------------------------
# Delivery & configuration failures
# ---------------------------------------------------------------------------


class TestLifecycleFailuresReachHandler:

    @pytest.mark.parametrize("ecosystem", ["npm", "maven"])
    async def test_panel_failure_is_handled(self, orchestrator, tmp_path, report_panel, progress, notifier, ecosystem) -> None:
        report_panel.update.side_effect = OSError("disk full")
        outcome = await orchestrator.process_stack_analyses(str(tmp_path), ecosystem)

        assert isinstance(outcome, AnalysisFailure)
        assert isinstance(outcome.error, PersistenceError)
        assert isinstance(outcome.error.__cause__, OSError)
        assert _statuses(progress) == [
            StatusMessage.RESOLVING,
            StatusMessage.ANALYZING,
            StatusMessage.FAILURE_ANALYZE,
        ]
        notifier.show_error.assert_called_once_with(outcome.error.message)

    async def test_panel_recovers_for_error_state(self, orchestrator, tmp_path, report_panel, notifier) -> None:
        report_panel.update.side_effect = [OSError("disk full"), None]
        outcome = await orchestrator.process_stack_analyses(str(tmp_path), "pypi")

        assert isinstance(outcome, AnalysisFailure)
        assert report_panel.update.call_args_list == [call({"report": "ready"}), call(ERROR_REPORT)]
        notifier.show_error.assert_called_once()

    async def test_invalid_settings_snapshot(self, orchestrator, tmp_path, progress, notifier, transport) -> None:
        def broken_settings():
            raise ValueError("STACK_ANALYSIS_POLL_INTERVAL_SECONDS must be > 0")

        orchestrator._settings_factory = broken_settings
        outcome = await orchestrator.process_stack_analyses(str(tmp_path), "npm")

        assert isinstance(outcome, AnalysisFailure)
        assert isinstance(outcome.error, ConfigurationError)
        assert _statuses(progress) == [StatusMessage.RESOLVING, StatusMessage.FAILURE_RESOLVE]
        transport.post.assert_not_awaited()
        notifier.show_error.assert_called_once()


# ---------------------------------------------------------------------------
# Single-flight & invalid input
# ---------------------------------------------------------------------------


class TestSingleFlight:

    async def test_concurrent_same_target_shares_one_lifecycle(
        self, orchestrator, tmp_path, transport, report_panel
    ) -> None:
        release = asyncio.Event()

        async def slow_post(*args, **kwargs):
            await release.wait()
            return "job-42"

        transport.post.side_effect = slow_post
        transport.get.return_value = REPORT
        first = asyncio.create_task(orchestrator.process_stack_analyses(str(tmp_path), "npm"))
        await asyncio.sleep(0)
        second = asyncio.create_task(orchestrator.process_stack_analyses(str(tmp_path), "npm"))
        await asyncio.sleep(0)
        assert orchestrator.in_progress(build_request("npm", str(tmp_path)))
        release.set()

        a, b = await asyncio.gather(first, second)
        assert a is b
        assert transport.post.await_count == 1
        report_panel.update.assert_called_once_with(REPORT)
        assert not orchestrator.in_progress(build_request("npm", str(tmp_path)))

    async def test_different_targets_run_independently(self, orchestrator, tmp_path, transport) -> None:
        other = tmp_path / "other"
        other.mkdir()
        await asyncio.gather(
            orchestrator.process_stack_analyses(str(tmp_path), "npm"),
            orchestrator.process_stack_analyses(str(other), "npm"),
        )
        assert transport.post.await_count == 2

    async def test_sequential_runs_are_not_deduplicated(self, orchestrator, tmp_path, transport) -> None:
        await orchestrator.process_stack_analyses(str(tmp_path), "npm")
        await orchestrator.process_stack_analyses(str(tmp_path), "npm")
        assert transport.post.await_count == 2

    async def test_invalid_ecosystem_raises(self, orchestrator, tmp_path, notifier) -> None:
        with pytest.raises(InvalidEcosystemError):
            await orchestrator.process_stack_analyses(str(tmp_path), "gradle")
        notifier.show_error.assert_not_called()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHandleError:

    async def test_plain_message(self, orchestrator, report_panel, notifier) -> None:
        orchestrator.handle_error("something broke")
        report_panel.update.assert_called_once_with(ERROR_REPORT)
        notifier.show_error.assert_called_once_with("something broke")

    async def test_without_panel(self, orchestrator, notifier) -> None:
        orchestrator.report_panel = None
        orchestrator.handle_error(SubmissionError("down"))
        notifier.show_error.assert_called_once_with("down")


class TestLifecycleProgress:

    async def test_single_terminal_status(self) -> None:
        reporter = MagicMock()
        progress = LifecycleProgress(reporter)
        progress.report(StatusMessage.RESOLVING)
        progress.report(StatusMessage.SUCCESS)
        progress.report(StatusMessage.FAILURE_ANALYZE)
        assert progress.history == [StatusMessage.RESOLVING, StatusMessage.SUCCESS]
        assert progress.terminal is StatusMessage.SUCCESS
        assert reporter.report.call_count == 2

    async def test_without_reporter(self) -> None:
        progress = LifecycleProgress(None)
        progress.report(StatusMessage.RESOLVING)
        assert progress.history == [StatusMessage.RESOLVING]


class TestParseJobHandle:

    @pytest.mark.parametrize(
        "body, expected",
        [
            ("job-1", "job-1"),
            ("  job-2\n", "job-2"),
            ('"job-3"', "job-3"),
            ('{"id": "job-4"}', "job-4"),
        ],
    )
    async def test_formats(self, body: str, expected: str) -> None:
        assert parse_job_handle(body) == expected

    @pytest.mark.parametrize("body", ["", "  ", '{"status": "ok"}', "null"])
    async def test_missing_id(self, body: str) -> None:
        with pytest.raises(SubmissionError):
            parse_job_handle(body)
