"""Terminal implementations of the host UI collaborators used by the CLI."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, TextIO

import structlog

from stackanalysis.domain.models import StatusMessage
from stackanalysis.domain.protocols import ERROR_REPORT
from stackanalysis.infrastructure.persistence import encode_report

logger = structlog.get_logger(__name__)


class ConsoleProgress:
    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stderr

    def report(self, message: StatusMessage) -> None:
        print(f"[stack-analysis] {message.value}", file=self._stream)


class ConsoleNotifier:
    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stderr

    def show_error(self, message: str) -> None:
        print(f"ERROR: {message}", file=self._stream)

    def show_info(self, message: str) -> None:
        print(f"INFO: {message}", file=self._stream)


class FileReportPanel:
    """Report sink that saves each delivered report to ``path``.

    The error state is recorded on the panel rather than overwriting the last report.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.errored = False
        self.updates = 0

    def update(self, data: Any) -> None:
        self.updates += 1
        if isinstance(data, str) and data == ERROR_REPORT:
            self.errored = True
            return
        self.errored = False
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_bytes(encode_report(data))
        logger.info("report_panel_updated", path=str(self.path))


__all__ = ["ConsoleNotifier", "ConsoleProgress", "FileReportPanel"]
