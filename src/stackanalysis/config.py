"""Stack analysis configuration — environment-driven, zero hardcoded secrets."""
from __future__ import annotations

import math
import os
import tempfile
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_REPORT_FILE_NAME = "dependencyAnalysisReport.html"
SNYK_TOKEN_URL = "https://app.snyk.io/redhat/snyk-token"


def default_report_file_path() -> Path:
    """Built-in report location used when no path is configured."""
    return Path(tempfile.gettempdir()) / "stackanalysis" / DEFAULT_REPORT_FILE_NAME


class Settings(BaseSettings):
    """Stack analysis configuration loaded from environment variables."""

    # Analysis service
    host: str = "https://recommender.api.openshift.io"
    api_key: str = ""

    # CRDA / Snyk
    crda_host: str = "https://gw.api.openshift.io"
    crda_snyk_token: str = ""

    # Report
    dependency_analysis_report_file_path: str = ""

    # Polling
    request_timeout_seconds: float = Field(default=600.0, gt=0)
    poll_interval_seconds: float = Field(default=5.0, gt=0)
    http_timeout_seconds: float = Field(default=30.0, gt=0)

    # Process-wide correlation id lives in this environment variable
    correlation_env_var: str = "UUID"

    # Direct (maven) analysis
    direct_analysis_command: str = "crda analyse --html {manifest}"

    # Logging
    log_level: str = "info"
    log_json: bool = False

    model_config = {"env_prefix": "STACK_ANALYSIS_", "env_file": ".env", "extra": "ignore"}

    @property
    def report_file_path(self) -> Path:
        if self.dependency_analysis_report_file_path:
            return Path(self.dependency_analysis_report_file_path).expanduser()
        return default_report_file_path()

    @property
    def max_poll_attempts(self) -> int:
        """``floor(request_timeout / poll_interval)``."""
        return math.floor(self.request_timeout_seconds / self.poll_interval_seconds)

    def correlation_id(self) -> str | None:
        """Read the process-wide correlation id at call time."""
        return os.environ.get(self.correlation_env_var) or None


def get_settings() -> Settings:
    """Build a fresh ``Settings`` snapshot; call once per lifecycle."""
    return Settings()


__all__ = [
    "DEFAULT_REPORT_FILE_NAME",
    "SNYK_TOKEN_URL",
    "Settings",
    "default_report_file_path",
    "get_settings",
]
