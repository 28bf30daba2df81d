"""
The "fetch JSON from URL" capability used by the analysis engine and the
connection test.

`JsonFetcher.fetch` never raises. Transport failures, non-2xx replies and
undecodable bodies all come back as a `FetchResult` whose `error_kind` lets
the caller decide which fallback to take.
"""
import logging
from typing import Optional

import requests

from config import GITHUB_API, GITHUB_TOKEN, HTTP_TIMEOUT
from data_models import FetchResult
from tracer import trace

RATE_LIMIT_STATUSES = (403, 429)


class JsonFetcher:
    """Performs GET requests that expect a JSON reply."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = HTTP_TIMEOUT,
        github_api: str = GITHUB_API,
        github_token: Optional[str] = GITHUB_TOKEN,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.github_api = github_api
        self.github_token = github_token

    def _headers(self, url: str) -> dict:
        headers = {"Accept": "application/json"}
        if url.startswith(self.github_api):
            headers["Accept"] = "application/vnd.github+json"
            # The token is only ever sent to the metadata provider.
            if self.github_token:
                headers["Authorization"] = f"Bearer {self.github_token}"
        return headers

    @trace
    def fetch(self, url: str) -> FetchResult:
        try:
            resp = self.session.get(url, headers=self._headers(url), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logging.warning(f"Request to {url} failed: {e}")
            return FetchResult(ok=False, error_kind="network", error=str(e) or type(e).__name__)

        if not resp.ok:
            kind = "rate_limited" if resp.status_code in RATE_LIMIT_STATUSES else "http_error"
            return FetchResult(
                ok=False,
                status=resp.status_code,
                text=(resp.text or "")[:100],
                error_kind=kind,
                error=f"HTTP Error: {resp.status_code} {resp.reason or ''}".strip(),
            )

        try:
            data = resp.json()
        except ValueError as e:
            return FetchResult(ok=False, status=resp.status_code, error_kind="invalid_json", error=f"Invalid JSON in response: {e}")
        return FetchResult(ok=True, status=resp.status_code, data=data)

    __call__ = fetch
