from __future__ import annotations

import logging
import socket
from typing import Protocol

import httpx

from .errors import DiscoveryError
from .runtime import Instance

log = logging.getLogger(__name__)


class Resolver(Protocol):
    def resolve(self, service: str) -> list[Instance]: ...


class StaticResolver:
    """Fixed ``name -> [(host, port), ...]`` table from configuration."""

    def __init__(self, table: dict[str, list[tuple[str, int]]]):
        self._instances: dict[str, list[Instance]] = {
            name: [Instance(service=name, host=h, port=int(p), label=str(p)) for h, p in addrs]
            for name, addrs in table.items()
        }

    def resolve(self, service: str) -> list[Instance]:
        return list(self._instances.get(service, []))


class RegistryResolver:
    """Ask the registry for live instances on every call (no local cache)."""

    def __init__(self, registry_url: str, timeout_s: float = 2.0, transport: httpx.BaseTransport | None = None):
        self.registry_url = registry_url.rstrip("/")
        self._client = httpx.Client(timeout=timeout_s, follow_redirects=False, transport=transport)

    def resolve(self, service: str) -> list[Instance]:
        url = f"{self.registry_url}/services/{service}/instances"
        try:
            resp = self._client.get(url)
        except httpx.HTTPError as e:
            raise DiscoveryError(f"Registry unreachable at {self.registry_url}: {type(e).__name__}") from e
        if resp.status_code == 404:
            return []
        if resp.status_code != 200:
            raise DiscoveryError(f"Registry returned HTTP {resp.status_code} for '{service}'.")
        try:
            data = resp.json()
        except ValueError as e:
            raise DiscoveryError("Registry returned invalid JSON.") from e
        if not isinstance(data, list):
            raise DiscoveryError(f"Registry returned {type(data).__name__} instead of an instance list.")
        try:
            return [
                Instance(
                    service=service,
                    host=row["host"],
                    port=int(row["port"]),
                    label=row.get("label") or "",
                    weight=int(row.get("weight", 1)),
                )
                for row in data
            ]
        except (TypeError, KeyError, ValueError, AttributeError) as e:
            raise DiscoveryError(f"Registry returned a malformed instance record: {type(e).__name__}: {e}") from e

    def close(self) -> None:
        self._client.close()


class DnsResolver:
    """Every address a name resolves to becomes one instance on a fixed port."""

    def __init__(self, port: int):
        self.port = int(port)

    def resolve(self, service: str) -> list[Instance]:
        try:
            infos = socket.getaddrinfo(service, self.port, type=socket.SOCK_STREAM)
        except socket.gaierror as e:
            log.warning("DNS lookup for %s failed: %s", service, e)
            return []
        seen: list[str] = []
        for info in infos:
            addr = info[4][0]
            if addr not in seen:
                seen.append(addr)
        return [Instance(service=service, host=a, port=self.port, label=a) for a in seen]
