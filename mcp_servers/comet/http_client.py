from __future__ import annotations

import urllib.parse
from http.client import HTTPException
from urllib.error import HTTPError, URLError
from urllib.request import ProxyHandler, Request, build_opener


class HttpClientError(Exception):
    pass


# The control endpoint is always on loopback; never route it through an env proxy.
_opener = build_opener(ProxyHandler({}))


def _build_request(url: str, method: str) -> Request:
    return Request(url, method=method, headers={"User-Agent": "comet-mcp/1.0"})


def fetch_text(url: str, *, method: str = "GET", timeout: float = 2.0, max_bytes: int = 4_000_000) -> tuple[int, str]:
    """Blocking HTTP call against the local control endpoint.

    Returns (status, body). Non-2xx statuses are returned, not raised; transport
    failures raise HttpClientError.
    """
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise HttpClientError("Only http/https are supported")
    req = _build_request(url, method)
    try:
        with _opener.open(req, timeout=timeout) as resp:
            body = resp.read(max_bytes)
            return int(resp.status), body.decode(errors="replace")
    except HTTPError as exc:
        # Chrome answers unknown targets on /json/close with 4xx.
        try:
            detail = exc.read().decode(errors="replace")
        except Exception:
            detail = ""
        return int(exc.code), detail
    except (TimeoutError, URLError, OSError, HTTPException) as exc:
        raise HttpClientError(str(exc)) from exc
