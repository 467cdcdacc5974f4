from __future__ import annotations
from dataclasses import dataclass
from typing import Any

import httpx

ACCEPT = "application/json, text/plain;q=0.9, */*;q=0.8"


class InvalidApiUrl(ValueError):
    pass


@dataclass
class FetchResult:
    status: int
    content_type: str
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def resolve_api_url(raw_url: str) -> str:
    """Parse and normalize an operator-entered URL.

    Returns "" for blank input. Raises InvalidApiUrl unless the URL is
    absolute http(s) with a host.
    """
    trimmed = raw_url.strip()
    if not trimmed:
        return ""
    try:
        url = httpx.URL(trimmed)
    except (httpx.InvalidURL, TypeError) as e:
        raise InvalidApiUrl(str(e)) from e
    if url.scheme not in ("http", "https") or not url.host:
        raise InvalidApiUrl(f"not an absolute http(s) url: {trimmed!r}")
    return str(url)


def build_headers(token: str = "") -> dict[str, str]:
    headers = {
        "Accept": ACCEPT,
        # always observe live upstream state
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


async def fetch_card_payload(
    http: httpx.AsyncClient, url: str, token: str = ""
) -> FetchResult:
    """GET ``url`` once. JSON bodies are decoded, anything else is text.

    Non-2xx responses come back with ``body=None``. Transport errors and
    malformed JSON propagate (httpx.HTTPError / ValueError).
    """
    # no timeout: callers bound latency themselves if they need to
    r = await http.get(url, headers=build_headers(token), timeout=None)
    content_type = (r.headers.get("content-type") or "").lower()
    if not r.is_success:
        return FetchResult(status=r.status_code, content_type=content_type)

    if "application/json" in content_type:
        body = r.json()
    else:
        body = r.text
    return FetchResult(
        status=r.status_code, content_type=content_type, body=body
    )
