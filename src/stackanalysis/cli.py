"""Command line entry point: run a stack analysis or validate the Snyk token."""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from stackanalysis.config import Settings, get_settings
from stackanalysis.domain.models import AnalysisSuccess, Ecosystem
from stackanalysis.engine import StackAnalysisOrchestrator, TokenValidator
from stackanalysis.infrastructure.external import StackAnalysisClient
from stackanalysis.infrastructure.logging import setup_logging
from stackanalysis.infrastructure.manifests import (
    CommandDirectAnalyzer,
    FileProjectDataProvider,
    StagingManifestResolver,
)
from stackanalysis.presentation.console import ConsoleNotifier, ConsoleProgress, FileReportPanel
from stackanalysis.shared.exceptions import InvalidEcosystemError


def _resolve_path(p: str) -> Path:
    return Path(p).expanduser().resolve()


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="stackanalysis",
        description="Submit a project's manifests for stack analysis and collect the report.",
    )
    p.add_argument("--log-level", default=None, help="debug | info | warning | error")
    p.add_argument("--json-logs", action="store_true", help="emit JSON log lines")
    sub = p.add_subparsers(dest="cmd", required=True)

    analyze = sub.add_parser("analyze", help="run one stack analysis lifecycle")
    analyze.add_argument("ecosystem", choices=[e.value for e in Ecosystem])
    analyze.add_argument("--workspace", default=".", help="workspace folder (default: current directory)")
    analyze.add_argument("--manifest", default=None, help="explicit manifest path inside the workspace")
    analyze.add_argument(
        "--report-out",
        default=None,
        help="where to save the delivered report (default: <report path stem>.panel<suffix>)",
    )

    sub.add_parser("validate-token", help="check the configured Snyk token")
    return p


def default_panel_path(settings: Settings) -> Path:
    """``report_file_path`` with ``.panel`` inserted before the suffix."""
    report = settings.report_file_path
    return report.with_name(f"{report.stem}.panel{report.suffix}")


def build_orchestrator(settings: Settings, report_out: Path | None = None) -> StackAnalysisOrchestrator:
    return StackAnalysisOrchestrator(
        transport=StackAnalysisClient(timeout=settings.http_timeout_seconds),
        data_provider=FileProjectDataProvider(),
        manifests=StagingManifestResolver(),
        direct_analyzer=CommandDirectAnalyzer(settings.direct_analysis_command),
        notifier=ConsoleNotifier(),
        report_panel=FileReportPanel(report_out or default_panel_path(settings)),
        progress=ConsoleProgress(),
    )


async def _analyze(args: argparse.Namespace, settings: Settings) -> int:
    report_out = _resolve_path(args.report_out) if args.report_out else None
    orchestrator = build_orchestrator(settings, report_out)
    manifest = str(_resolve_path(args.manifest)) if args.manifest else None
    outcome = await orchestrator.process_stack_analyses(str(_resolve_path(args.workspace)), args.ecosystem, manifest)
    if isinstance(outcome, AnalysisSuccess):
        print(f"OK: report saved to {orchestrator.report_panel.path}")
        return 0
    return 1


async def _validate_token(settings: Settings) -> int:
    validator = TokenValidator(StackAnalysisClient(timeout=settings.http_timeout_seconds), ConsoleNotifier())
    task = validator.validate()
    if task is None:
        return 1
    return 0 if await task else 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(level=args.log_level or settings.log_level, json_output=args.json_logs or settings.log_json)

    try:
        if args.cmd == "analyze":
            return asyncio.run(_analyze(args, settings))
        if args.cmd == "validate-token":
            return asyncio.run(_validate_token(settings))
    except InvalidEcosystemError as e:
        print(f"ERROR: {e.message}", file=sys.stderr)
        return 2
    return 2


if __name__ == "__main__":
    sys.exit(main())
