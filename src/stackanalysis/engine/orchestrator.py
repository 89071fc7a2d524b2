"""Stack analysis orchestrator — one lifecycle per (ecosystem, target).

Two strategies, selected by ecosystem:

    maven                 RESOLVING → ANALYZING → direct analysis → write report → SUCCESS
    npm / pypi / golang   RESOLVING → project data → manifests → ANALYZING → payload
                          → submit → poll → SUCCESS

Any failure goes through :meth:`StackAnalysisOrchestrator.handle_error`, which
resets the report panel and shows the message; the lifecycle then resolves
with its terminal outcome.  Each lifecycle emits exactly one terminal status.
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable

import structlog

from stackanalysis.config import Settings, get_settings
from stackanalysis.domain.models import (
    AnalysisFailure,
    AnalysisOutcome,
    AnalysisRequest,
    AnalysisSuccess,
    AnalysisTimeout,
    DirectAnalysisOptions,
    Ecosystem,
    JobHandle,
    ProjectData,
    RequestOptions,
    StatusMessage,
    SubmissionOptions,
    Variant,
)
from stackanalysis.domain.protocols import (
    ERROR_REPORT,
    DirectAnalyzer,
    ManifestResolver,
    Notifier,
    ProgressReporter,
    ProjectDataProvider,
    ReportPanel,
    ReportStore,
    Transport,
)
from stackanalysis.infrastructure.logging import bind_correlation_id
from stackanalysis.infrastructure.persistence import FileReportStore
from stackanalysis.infrastructure.tasks import SingleFlight
from stackanalysis.shared.exceptions import (
    ConfigurationError,
    PersistenceError,
    PollTimeoutError,
    ResolutionError,
    StackAnalysisError,
    SubmissionError,
)

from .endpoints import submission_url
from .poller import PollLoop, Sleep
from .resolver import build_request

logger = structlog.get_logger(__name__)

_PROVIDER_DISPATCH: dict[Variant, Callable[[ProjectDataProvider, str], Awaitable[ProjectData]]] = {
    Variant.EFFECTIVE_POM: lambda provider, path: provider.effective_pom(path),
    Variant.EFFECTIVE_PACKAGE: lambda provider, path: provider.effective_package(path),
    Variant.EFFECTIVE_PYPI: lambda provider, path: provider.effective_pypi(path),
    Variant.EFFECTIVE_GOLANG: lambda provider, path: provider.effective_golang(path),
}


def _as_error(exc: Exception, error_cls: type[StackAnalysisError], message: str) -> StackAnalysisError:
    if isinstance(exc, StackAnalysisError):
        return exc
    error = error_cls(f"{message}: {exc}", context={"cause": type(exc).__name__})
    error.__cause__ = exc
    return error


def parse_job_handle(body: str) -> JobHandle:
    """Job id from a submission response: plain text, a JSON string, or a JSON object with ``id``."""
    text = (body or "").strip()
    try:
        parsed: Any = json.loads(text)
    except ValueError:
        parsed = text
    if isinstance(parsed, dict):
        parsed = parsed.get("id", "")
    handle = str(parsed).strip() if parsed is not None else ""
    if not handle:
        raise SubmissionError("Stack analysis service returned no job id", context={"body": text[:200]})
    return JobHandle(handle)


class LifecycleProgress:
    """Forwards status messages to the host; drops anything after the terminal one."""

    def __init__(self, reporter: ProgressReporter | None) -> None:
        self._reporter = reporter
        self.history: list[StatusMessage] = []
        self.terminal: StatusMessage | None = None

    def report(self, message: StatusMessage) -> None:
        if self.terminal is not None:
            logger.warning("status_after_terminal", status=message.name, terminal=self.terminal.name)
            return
        if message.is_terminal:
            self.terminal = message
        self.history.append(message)
        if self._reporter is not None:
            self._reporter.report(message)


class StackAnalysisOrchestrator:
    """Runs stack analysis lifecycles against injected collaborators.

    Args:
        transport: HTTP transport for submission and polling.
        data_provider: Resolves project data per variant.
        manifests: Manifest resolution and payload construction.
        direct_analyzer: Synchronous analysis used for maven.
        notifier: Shows errors and notices to the user.
        report_panel: Result sink; ``None`` when no panel is open.
        progress: Receives phase status messages.
        report_store: Persists direct-strategy reports.
        settings_factory: Called once per lifecycle for a configuration snapshot.
        sleep: Poll timer sleep; replaceable in tests.
    """

    def __init__(
        self,
        *,
        transport: Transport,
        data_provider: ProjectDataProvider,
        manifests: ManifestResolver,
        direct_analyzer: DirectAnalyzer,
        notifier: Notifier,
        report_panel: ReportPanel | None = None,
        progress: ProgressReporter | None = None,
        report_store: ReportStore | None = None,
        settings_factory: Callable[[], Settings] = get_settings,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._provider = data_provider
        self._manifests = manifests
        self._direct = direct_analyzer
        self._notifier = notifier
        self.report_panel = report_panel
        self._progress = progress
        self._store = report_store or FileReportStore()
        self._settings_factory = settings_factory
        self._sleep = sleep
        self._flights = SingleFlight()

    # -- entry points -------------------------------------------------------

    async def process_stack_analyses(
        self,
        workspace_root: str,
        ecosystem: str | Ecosystem,
        uri: str | None = None,
    ) -> AnalysisOutcome:
        """Resolve the target for *ecosystem* and run its lifecycle.

        Raises:
            InvalidEcosystemError: If *ecosystem* is not supported.
        """
        request = build_request(ecosystem, workspace_root, uri)
        return await self.run(request)

    async def run(self, request: AnalysisRequest) -> AnalysisOutcome:
        """Run one lifecycle; a concurrent call for the same target shares its outcome."""
        return await self._flights.run(request.flight_key, lambda: self._lifecycle(request))

    def in_progress(self, request: AnalysisRequest) -> bool:
        return self._flights.in_flight(request.flight_key)

    def cancel(self, request: AnalysisRequest) -> bool:
        return self._flights.cancel(request.flight_key)

    # -- error handling -----------------------------------------------------

    def handle_error(self, error: StackAnalysisError | str) -> None:
        """Reset the report panel to its error state and show *error* to the user."""
        message = error.message if isinstance(error, StackAnalysisError) else str(error)
        if isinstance(error, StackAnalysisError):
            logger.error("analysis_failed", **error.to_dict())
        else:
            logger.error("analysis_failed", message=message)
        if self.report_panel is not None:
            try:
                self.report_panel.update(ERROR_REPORT)
            except Exception as exc:
                logger.warning("report_panel_reset_failed", error=str(exc))
        self._notifier.show_error(message)

    # -- lifecycle ----------------------------------------------------------

    async def _lifecycle(self, request: AnalysisRequest) -> AnalysisOutcome:
        progress = LifecycleProgress(self._progress)
        progress.report(StatusMessage.RESOLVING)
        try:
            settings = self._settings_factory()
            correlation_id = settings.correlation_id()
        except Exception as exc:
            error = _as_error(exc, ConfigurationError, "Invalid stack analysis configuration")
            return self._fail(error, progress, StatusMessage.FAILURE_RESOLVE)
        bind_correlation_id(correlation_id)
        logger.info(
            "analysis_started",
            ecosystem=request.ecosystem.value,
            target=request.target_path,
            variant=request.variant.value,
        )
        if request.ecosystem.uses_direct_analysis:
            return await self._run_direct(request, settings, progress)
        return await self._run_submit_then_poll(request, settings, progress, correlation_id)

    async def _run_direct(
        self,
        request: AnalysisRequest,
        settings: Settings,
        progress: LifecycleProgress,
    ) -> AnalysisOutcome:
        try:
            await self._manifests.trigger_manifest(request.workspace_root)
        except Exception as exc:
            error = _as_error(exc, ResolutionError, "Failed to resolve application dependencies")
            return self._fail(error, progress, StatusMessage.FAILURE_RESOLVE)
        progress.report(StatusMessage.ANALYZING)

        options = DirectAnalysisOptions(token=settings.crda_snyk_token or None)
        try:
            report = await self._direct.stack_analysis(request.target_path, options)
        except Exception as exc:
            error = _as_error(exc, SubmissionError, "Stack analysis failed")
            return self._fail(error, progress, StatusMessage.FAILURE_RESOLVE)

        try:
            await self._store.write(settings.report_file_path, report)
        except Exception as exc:
            error = _as_error(exc, PersistenceError, "Failed to write dependency analysis report")
            return self._fail(error, progress, StatusMessage.FAILURE_ANALYZE)

        return self._complete(report, progress)

    async def _run_submit_then_poll(
        self,
        request: AnalysisRequest,
        settings: Settings,
        progress: LifecycleProgress,
        correlation_id: str | None,
    ) -> AnalysisOutcome:
        try:
            data = await _PROVIDER_DISPATCH[request.variant](self._provider, request.target_path)
            # manifests must be resolved before the payload reads them
            await self._manifests.trigger_manifest(request.workspace_root, data)
            progress.report(StatusMessage.ANALYZING)
            payload = await self._manifests.build_payload(data, request.ecosystem)
        except Exception as exc:
            error = _as_error(exc, ResolutionError, "Failed to resolve application dependencies")
            return self._fail(error, progress, StatusMessage.FAILURE_RESOLVE)

        submission = SubmissionOptions(
            endpoint_uri=submission_url(settings.host, settings.api_key),
            headers=RequestOptions(correlation_id=correlation_id, transitive_report=True).headers(),
            payload=payload,
        )
        try:
            body = await self._transport.post(
                submission.endpoint_uri, files=submission.payload, headers=submission.headers
            )
            handle = parse_job_handle(body)
        except Exception as exc:
            error = _as_error(exc, SubmissionError, "Failed to submit stack analysis")
            return self._fail(error, progress, StatusMessage.FAILURE_ANALYZE)
        logger.info("analysis_submitted", handle=handle)

        loop = PollLoop.from_settings(self._transport, settings, sleep=self._sleep)
        outcome = await loop.poll(handle, settings.host, settings.api_key, correlation_id)

        if isinstance(outcome, AnalysisSuccess):
            return self._complete(outcome.report, progress)
        if isinstance(outcome, AnalysisTimeout):
            progress.report(StatusMessage.FAILURE_ANALYZE)
            self.handle_error(PollTimeoutError(context={"handle": handle, "attempts": outcome.attempts}))
        else:
            self._fail(outcome.error, progress, StatusMessage.FAILURE_ANALYZE)
        return outcome

    # -- terminal actions ---------------------------------------------------

    def _complete(self, report: Any, progress: LifecycleProgress) -> AnalysisOutcome:
        """Hand the report to the panel, then emit SUCCESS; a panel failure fails the lifecycle."""
        if self.report_panel is not None:
            try:
                self.report_panel.update(report)
            except Exception as exc:
                error = _as_error(exc, PersistenceError, "Failed to deliver dependency analysis report")
                return self._fail(error, progress, StatusMessage.FAILURE_ANALYZE)
        progress.report(StatusMessage.SUCCESS)
        logger.info("analysis_completed")
        return AnalysisSuccess(report)

    def _fail(
        self,
        error: StackAnalysisError,
        progress: LifecycleProgress,
        status: StatusMessage,
    ) -> AnalysisFailure:
        progress.report(status)
        self.handle_error(error)
        return AnalysisFailure(error)


__all__ = ["LifecycleProgress", "StackAnalysisOrchestrator", "parse_job_handle"]
