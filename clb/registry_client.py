from __future__ import annotations

import logging
from threading import Event, Thread

import httpx

from .runtime import Instance

log = logging.getLogger(__name__)


class RegistryClient:
    """Keeps one instance registered: register, renew the lease, deregister."""

    def __init__(
        self,
        registry_url: str,
        instance: Instance,
        renewal_interval_s: float = 30,
        lease_duration_s: int = 90,
        transport: httpx.BaseTransport | None = None,
    ):
        self.registry_url = registry_url.rstrip("/")
        self.instance = instance
        self.renewal_interval_s = max(0.01, float(renewal_interval_s))
        self.lease_duration_s = max(1, int(lease_duration_s))
        self._transport = transport
        self._client = httpx.Client(timeout=2.0, follow_redirects=False, transport=transport)
        self._stop = Event()
        self._thr: Thread | None = None

    @property
    def _instance_url(self) -> str:
        return f"{self.registry_url}/services/{self.instance.service}/instances/{self.instance.instance_id}"

    def register(self) -> bool:
        payload = {
            "host": self.instance.host,
            "port": self.instance.port,
            "label": self.instance.label,
            "weight": self.instance.weight,
            "lease_duration_s": self.lease_duration_s,
            "instance_id": self.instance.instance_id,
        }
        try:
            resp = self._client.post(f"{self.registry_url}/services/{self.instance.service}/instances", json=payload)
        except httpx.HTTPError as e:
            log.warning("Registration of %s failed: %s: %s", self.instance.instance_id, type(e).__name__, e)
            return False
        if resp.status_code not in (200, 201):
            log.warning("Registration of %s rejected: HTTP %s", self.instance.instance_id, resp.status_code)
            return False
        log.info("Registered %s with %s", self.instance.instance_id, self.registry_url)
        return True

    def heartbeat(self) -> bool:
        """Renew the lease; re-register when the registry has forgotten us."""
        try:
            resp = self._client.put(f"{self._instance_url}/heartbeat")
        except httpx.HTTPError as e:
            log.warning("Heartbeat for %s failed: %s: %s", self.instance.instance_id, type(e).__name__, e)
            return False
        if resp.status_code == 404:
            log.info("Registry does not know %s; registering again", self.instance.instance_id)
            return self.register()
        return resp.status_code == 200

    def deregister(self) -> bool:
        try:
            resp = self._client.delete(self._instance_url)
        except httpx.HTTPError as e:
            log.warning("Deregistration of %s failed: %s: %s", self.instance.instance_id, type(e).__name__, e)
            return False
        log.info("Deregistered %s (HTTP %s)", self.instance.instance_id, resp.status_code)
        return resp.status_code in (200, 204, 404)

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._stop.clear()
        if self._client.is_closed:
            self._client = httpx.Client(timeout=2.0, follow_redirects=False, transport=self._transport)
        self._thr = Thread(target=self._loop, daemon=True, name=f"heartbeat-{self.instance.instance_id}")
        self._thr.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thr:
            self._thr.join(timeout=5)
        self.deregister()
        self._client.close()

    def _loop(self) -> None:
        # First registration runs on the heartbeat thread, not the caller's.
        self.register()
        while not self._stop.wait(self.renewal_interval_s):
            self.heartbeat()
