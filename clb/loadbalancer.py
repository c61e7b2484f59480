from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import httpx

from .discovery import Resolver
from .errors import UpstreamError
from .gateway import SelectionStrategy, select_backend

log = logging.getLogger(__name__)


class LoadBalancedClient:
    """HTTP client whose URLs name a logical service instead of a host.

    ``get_text("http://service-hi/hi", params={"name": "x"})`` resolves
    ``service-hi``, picks one instance and sends the request there.
    One attempt only: a failed call is reported, never retried elsewhere.
    """

    def __init__(
        self,
        resolver: Resolver,
        strategy: SelectionStrategy,
        timeout_s: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.resolver = resolver
        self.strategy = strategy
        self._client = httpx.Client(timeout=timeout_s, follow_redirects=False, transport=transport)

    def get_text(self, url: str, params: dict[str, Any] | None = None) -> str:
        parts = urlsplit(url)
        service = parts.hostname
        if not service:
            raise ValueError(f"URL {url!r} has no service name.")

        target = select_backend(service, self.resolver, self.strategy)
        real_url = urlunsplit((parts.scheme or "http", f"{target.host}:{int(target.port)}", parts.path, parts.query, ""))
        log.debug("%s -> %s", url, real_url)

        try:
            resp = self._client.get(real_url, params=params)
        except httpx.TimeoutException as e:
            raise UpstreamError(f"Timed out calling {service} at {target.base_url}.", timeout=True) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Call to {service} at {target.base_url} failed: {type(e).__name__}") from e

        if not resp.is_success:
            raise UpstreamError(f"{service} at {target.base_url} answered HTTP {resp.status_code}.")
        return resp.text

    def close(self) -> None:
        self._client.close()
