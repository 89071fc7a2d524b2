"""Best-effort Snyk token validation."""
from __future__ import annotations

import asyncio
from typing import Callable

import structlog

from stackanalysis.config import SNYK_TOKEN_URL, Settings, get_settings
from stackanalysis.domain.models import RequestOptions
from stackanalysis.domain.protocols import Notifier, Transport
from stackanalysis.infrastructure.tasks import TaskRunner, get_task_runner

from .endpoints import token_url

logger = structlog.get_logger(__name__)

MISSING_TOKEN_NOTICE = (
    "Please note that if you fail to provide a valid Snyk Token in the extension workspace settings, "
    "Snyk vulnerabilities will not be displayed. "
    "To resolve this issue, please obtain a valid token from the following link: [here]({url})."
)


class TokenValidator:
    """Fires a validation request for the configured token, or tells the user once that none is set."""

    def __init__(
        self,
        transport: Transport,
        notifier: Notifier,
        *,
        settings_factory: Callable[[], Settings] = get_settings,
        task_runner: TaskRunner | None = None,
    ) -> None:
        self._transport = transport
        self._notifier = notifier
        self._settings_factory = settings_factory
        self._tasks = task_runner or get_task_runner()
        self._notice_shown = False

    def validate(self) -> asyncio.Task | None:
        """Start validation in the background; returns the task, or ``None`` when no token is set."""
        settings = self._settings_factory()
        token = settings.crda_snyk_token
        if not token:
            if not self._notice_shown:
                self._notice_shown = True
                self._notifier.show_info(MISSING_TOKEN_NOTICE.format(url=SNYK_TOKEN_URL))
            return None
        return self._tasks.submit("validate-snyk-token", self._check(token_url(settings.crda_host), token))

    async def _check(self, url: str, token: str) -> bool:
        try:
            await self._transport.get(url, headers=RequestOptions(token=token).headers())
        except Exception as exc:
            logger.warning("token_validation_failed", error=str(exc))
            return False
        logger.info("token_validated")
        return True


__all__ = ["MISSING_TOKEN_NOTICE", "TokenValidator"]
