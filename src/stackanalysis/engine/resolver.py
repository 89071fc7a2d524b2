"""Ecosystem resolver — manifest location and analysis variant per ecosystem."""
from __future__ import annotations

from pathlib import Path

from stackanalysis.domain.models import AnalysisRequest, Ecosystem, ResolvedTarget, Variant
from stackanalysis.shared.exceptions import InvalidEcosystemError


def _strip_manifest(uri: str, manifest_name: str) -> str:
    path = Path(uri)
    if path.name == manifest_name:
        return str(path.parent)
    return str(path)


def _maven(workspace_root: str, uri: str | None) -> str:
    return uri if uri else str(Path(workspace_root) / "pom.xml")


def _npm(workspace_root: str, uri: str | None) -> str:
    return _strip_manifest(uri, "package.json") if uri else workspace_root


def _pypi(workspace_root: str, uri: str | None) -> str:
    return _strip_manifest(uri, "requirements.txt") if uri else workspace_root


def _golang(workspace_root: str, uri: str | None) -> str:
    return uri if uri else workspace_root


_RESOLVERS = {
    Ecosystem.MAVEN: (_maven, Variant.EFFECTIVE_POM),
    Ecosystem.NPM: (_npm, Variant.EFFECTIVE_PACKAGE),
    Ecosystem.PYPI: (_pypi, Variant.EFFECTIVE_PYPI),
    Ecosystem.GOLANG: (_golang, Variant.EFFECTIVE_GOLANG),
}


def parse_ecosystem(ecosystem: str | Ecosystem) -> Ecosystem:
    try:
        return Ecosystem(ecosystem)
    except ValueError:
        raise InvalidEcosystemError(str(ecosystem)) from None


def resolve(ecosystem: str | Ecosystem, workspace_root: str, uri: str | None = None) -> ResolvedTarget:
    """Derive ``(target_path, variant)`` for *ecosystem*.

    Args:
        ecosystem: One of ``maven``, ``npm``, ``pypi``, ``golang``.
        workspace_root: Workspace folder path.
        uri: Explicit manifest path chosen by the user, if any.

    Raises:
        InvalidEcosystemError: For any other ecosystem tag.
    """
    target_fn, variant = _RESOLVERS[parse_ecosystem(ecosystem)]
    return ResolvedTarget(target_path=target_fn(workspace_root, uri), variant=variant)


def build_request(ecosystem: str | Ecosystem, workspace_root: str, uri: str | None = None) -> AnalysisRequest:
    eco = parse_ecosystem(ecosystem)
    target = resolve(eco, workspace_root, uri)
    return AnalysisRequest(
        ecosystem=eco,
        target_path=target.target_path,
        workspace_root=workspace_root,
        variant=target.variant,
    )


__all__ = ["build_request", "parse_ecosystem", "resolve"]
