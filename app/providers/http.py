

# app/providers/http.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from services.redaction import redact_dict

logger = logging.getLogger("memories.http")

_SECRET_HEADERS = {"authorization", "x-api-key"}


@dataclass
class HttpResponse:
    status_code: int
    json: Optional[dict[str, Any]]
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class HttpClient:
    def __init__(self, timeout_s: float = 20.0, follow_redirects: bool = True):
        self._client = httpx.Client(timeout=timeout_s, follow_redirects=follow_redirects)

    def post(
        self,
        url: str,
        *,
        headers: dict[str, str],
        json_body: dict[str, Any] | None = None,
        auth: tuple[str, str] | None = None,
    ) -> HttpResponse:
        r = self._client.post(url, headers=headers, json=json_body, auth=auth)
        self._log_exchange("POST", url, headers, json_body, r)
        return self._wrap(r)

    @staticmethod
    def _wrap(r: httpx.Response) -> HttpResponse:
        try:
            payload = r.json()
        except ValueError:
            payload = None
        return HttpResponse(status_code=r.status_code, json=payload, text=r.text)

    @staticmethod
    def _log_exchange(method: str, url: str, headers: dict[str, str], json_body: Any, r: httpx.Response) -> None:
        if not logger.isEnabledFor(logging.DEBUG):
            return
        safe_headers = {
            k: ("REDACTED" if k.lower() in _SECRET_HEADERS else v) for k, v in (headers or {}).items()
        }
        body = redact_dict(json_body) if isinstance(json_body, dict) else json_body
        logger.debug(
            "http %s %s headers=%s json=%s -> status=%s text=%s",
            method,
            url,
            safe_headers,
            body,
            r.status_code,
            r.text[:300],
        )
