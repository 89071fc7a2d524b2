"""Analysis service endpoints."""
from __future__ import annotations

from urllib.parse import quote


def submission_url(host: str, api_key: str) -> str:
    return f"{host.rstrip('/')}/api/v2/stack-analyses?user_key={quote(api_key, safe='')}"


def status_url(host: str, handle: str, api_key: str) -> str:
    return f"{host.rstrip('/')}/api/v2/stack-analyses/{quote(handle, safe='')}?user_key={quote(api_key, safe='')}"


def token_url(crda_host: str) -> str:
    return f"{crda_host.rstrip('/')}/api/v3/token"

