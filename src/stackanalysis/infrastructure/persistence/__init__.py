"""Report persistence — writes analysis reports to the local file system."""
from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import structlog

from stackanalysis.shared.exceptions import PersistenceError

logger = structlog.get_logger(__name__)


def _write_bytes(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


class FileReportStore:
    """Writes report files, creating parent directories; existing files are overwritten."""

    async def write(self, path: Path, content: bytes) -> Path:
        try:
            await asyncio.to_thread(_write_bytes, path, content)
        except OSError as exc:
            raise PersistenceError(
                f"Failed to write dependency analysis report to {path}: {exc}",
                context={"path": str(path)},
            ) from exc
        logger.info("report_written", path=str(path), size=len(content))
        return path


def encode_report(report: Any) -> bytes:
    """Bytes for a report payload: raw bytes/str as-is, anything else as indented JSON."""
    if isinstance(report, bytes):
        return report
    if isinstance(report, str):
        return report.encode("utf-8")
    return (json.dumps(report, ensure_ascii=False, indent=2) + "\n").encode("utf-8")


__all__ = ["FileReportStore", "encode_report"]
