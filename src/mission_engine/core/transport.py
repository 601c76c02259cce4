from __future__ import annotations

import asyncio
import json
from typing import Any
from urllib import error as urllib_error
from urllib import request as urllib_request

from .ports import HttpResponse


def _decode_body(raw: bytes) -> Any:
    if not raw:
        return None
    text = raw.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except Exception:
        return text


class UrllibTransport:
    """JSON-over-HTTP transport running blocking ``urllib`` calls in a worker thread.

    Non-success HTTP statuses are returned as responses; connection failures
    and timeouts propagate as ``OSError`` subclasses.
    """

    def __init__(self, user_agent: str = "mission-engine/0.1"):
        self._user_agent = user_agent

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        payload: dict[str, Any] | None = None,
        timeout: float,
    ) -> HttpResponse:
        return await asyncio.to_thread(self._request_sync, method, url, headers, payload, timeout)

    def _request_sync(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None,
        payload: dict[str, Any] | None,
        timeout: float,
    ) -> HttpResponse:
        all_headers = {"User-Agent": self._user_agent, "Accept": "application/json"}
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            all_headers["Content-Type"] = "application/json"
        all_headers.update(headers or {})
        request = urllib_request.Request(url, data=data, headers=all_headers, method=method.upper())
        try:
            with urllib_request.urlopen(request, timeout=timeout) as response:  # noqa: S310
                return HttpResponse(
                    status=int(getattr(response, "status", 200)),
                    body=_decode_body(response.read()),
                    reason=str(getattr(response, "reason", "") or ""),
                )
        except urllib_error.HTTPError as exc:
            try:
                raw = exc.read()
            except Exception:
                raw = b""
            return HttpResponse(status=int(exc.code), body=_decode_body(raw), reason=str(exc.reason or ""))
