"""External service clients — async HTTP transport for the analysis service."""
from __future__ import annotations

from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)


class StackAnalysisClient:
    """Async HTTP transport with timeout and structured error logging.

    Failures surface as ``httpx.HTTPStatusError`` (non-2xx) or
    ``httpx.RequestError`` (network).  Requests are never retried here; the
    poll loop's re-attempts are the only retry mechanism.
    """

    def __init__(self, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def post(self, url: str, *, files: Any = None, headers: dict[str, str] | None = None) -> str:
        """POST multipart form data and return the response body as text."""
        try:
            async with self._client() as client:
                response = await client.post(url, files=files, headers=headers)
                response.raise_for_status()
                return response.text
        except httpx.HTTPStatusError as e:
            logger.warning("http_error", method="POST", url=_redact(url), status=e.response.status_code)
            raise
        except httpx.RequestError as e:
            logger.warning("http_request_error", method="POST", url=_redact(url), error=str(e))
            raise

    async def get(self, url: str, *, headers: dict[str, str] | None = None) -> Any:
        """GET and return the JSON body, or the raw text when it is not JSON."""
        try:
            async with self._client() as client:
                response = await client.get(url, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning("http_error", method="GET", url=_redact(url), status=e.response.status_code)
            raise
        except httpx.RequestError as e:
            logger.warning("http_request_error", method="GET", url=_redact(url), error=str(e))
            raise
        try:
            return response.json()
        except ValueError:
            return response.text


def _redact(url: str) -> str:
    """Strip ``user_key`` from URLs before they reach the logs."""
    parsed = httpx.URL(url)
    if "user_key" not in parsed.params:
        return url
    return str(parsed.copy_set_param("user_key", "***"))


__all__ = ["StackAnalysisClient"]
