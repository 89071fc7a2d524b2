"""File-system manifest collaborators.

Reads ecosystem manifests from disk, stages them for submission, builds the
multipart payload and runs the direct (maven) analysis command.
"""
from __future__ import annotations

import asyncio
import hashlib
import os
import shlex
import tempfile
from pathlib import Path
from typing import Any

import structlog

from stackanalysis.domain.models import DirectAnalysisOptions, Ecosystem, ProjectData
from stackanalysis.shared.exceptions import ResolutionError, SubmissionError

logger = structlog.get_logger(__name__)

_CONTENT_TYPES = {
    ".json": "application/json",
    ".xml": "text/xml",
    ".txt": "text/plain",
    ".mod": "text/plain",
    ".sum": "text/plain",
}


def slug(s: str) -> str:
    s = (s or "").strip().replace(" ", "-")
    out = []
    for ch in s:
        if ch.isalnum() or ch in "._-":
            out.append(ch)
        else:
            out.append("_")
    return "".join(out) or "project"


def _read_manifests(directory: Path, required: str, optional: tuple[str, ...] = ()) -> dict[str, bytes]:
    manifest = directory / required
    if not manifest.is_file():
        raise ResolutionError(f"{required} not found in {directory}", context={"path": str(directory)})
    out = {required: manifest.read_bytes()}
    for name in optional:
        cand = directory / name
        if cand.is_file():
            out[name] = cand.read_bytes()
    return out


class FileProjectDataProvider:
    """Project data straight from the manifests on disk."""

    async def effective_pom(self, target_path: str) -> ProjectData:
        pom = Path(target_path)
        if not pom.is_file():
            raise ResolutionError(f"pom.xml not found at {pom}", context={"path": str(pom)})
        content = await asyncio.to_thread(pom.read_bytes)
        return ProjectData(Ecosystem.MAVEN, target_path, {pom.name: content})

    async def effective_package(self, target_path: str) -> ProjectData:
        manifests = await asyncio.to_thread(
            _read_manifests, Path(target_path), "package.json", ("package-lock.json",)
        )
        return ProjectData(Ecosystem.NPM, target_path, manifests)

    async def effective_pypi(self, target_path: str) -> ProjectData:
        manifests = await asyncio.to_thread(_read_manifests, Path(target_path), "requirements.txt")
        return ProjectData(Ecosystem.PYPI, target_path, manifests)

    async def effective_golang(self, target_path: str) -> ProjectData:
        path = Path(target_path)
        directory = path.parent if path.name == "go.mod" else path
        manifests = await asyncio.to_thread(_read_manifests, directory, "go.mod", ("go.sum",))
        return ProjectData(Ecosystem.GOLANG, target_path, manifests)


class StagingManifestResolver:
    """Stages resolved manifests per workspace and builds payloads from the staged copies.

    ``build_payload`` only reads what ``trigger_manifest`` staged, so the two
    must run in that order.
    """

    def __init__(self, staging_root: Path | None = None) -> None:
        self._staging_root = staging_root or Path(tempfile.gettempdir()) / "stackanalysis" / "staging"
        self._staged: dict[tuple[Ecosystem, str], Path] = {}

    async def trigger_manifest(self, workspace_root: str, data: ProjectData | None = None) -> None:
        workspace = Path(workspace_root)
        if not workspace.is_dir():
            raise ResolutionError(f"Workspace folder not found: {workspace}", context={"path": str(workspace)})
        if data is None:
            return
        stage_dir = self._stage_dir(workspace, data)
        await asyncio.to_thread(self._stage, stage_dir, data.manifests)
        self._staged[(data.ecosystem, data.target_path)] = stage_dir
        logger.info("manifests_staged", ecosystem=data.ecosystem.value, files=sorted(data.manifests), dir=str(stage_dir))

    def _stage_dir(self, workspace: Path, data: ProjectData) -> Path:
        # one directory per (ecosystem, target)
        digest = hashlib.sha256(str(Path(data.target_path).resolve()).encode("utf-8")).hexdigest()[:16]
        return self._staging_root / slug(workspace.name) / data.ecosystem.value / digest

    @staticmethod
    def _stage(stage_dir: Path, manifests: dict[str, bytes]) -> None:
        stage_dir.mkdir(parents=True, exist_ok=True)
        for name, content in manifests.items():
            (stage_dir / name).write_bytes(content)

    async def build_payload(self, data: ProjectData, ecosystem: Ecosystem) -> list[tuple[str, Any]]:
        stage_dir = self._staged.get((ecosystem, data.target_path))
        if stage_dir is None:
            raise ResolutionError(
                "Manifest resolution has not run for this project",
                context={"ecosystem": ecosystem.value, "path": data.target_path},
            )
        target = Path(data.target_path)
        manifest_dir = target.parent if target.name in data.manifests else target
        files: list[tuple[str, Any]] = []
        for name in sorted(data.manifests):
            staged = stage_dir / name
            content = await asyncio.to_thread(staged.read_bytes)
            content_type = _CONTENT_TYPES.get(staged.suffix, "application/octet-stream")
            files.append(("manifest[]", (name, content, content_type)))
            files.append(("filePath[]", (None, str(manifest_dir / name))))
        return files


class CommandDirectAnalyzer:
    """Runs the configured analysis command and returns its stdout as the report.

    ``{manifest}`` in the command template is replaced with the target path.
    Options are passed to the command as environment variables.
    """

    def __init__(self, command: str) -> None:
        self._argv = shlex.split(command)
        if not self._argv:
            raise ValueError("direct analysis command is empty")

    async def stack_analysis(self, target_path: str, options: DirectAnalysisOptions) -> bytes:
        argv = [arg.replace("{manifest}", target_path) for arg in self._argv]
        env = {**os.environ, **options.as_mapping()}
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as exc:
            raise SubmissionError(
                f"Could not run {argv[0]}: {exc}", context={"command": argv[0]}
            ) from exc
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            tail = stderr.decode("utf-8", errors="replace").strip()[-500:]
            raise SubmissionError(
                f"Stack analysis command failed with exit code {proc.returncode}: {tail}",
                context={"command": argv[0], "returncode": proc.returncode},
            )
        logger.info("direct_analysis_completed", command=argv[0], size=len(stdout))
        return stdout


__all__ = [
    "CommandDirectAnalyzer",
    "FileProjectDataProvider",
    "StagingManifestResolver",
    "slug",
]
