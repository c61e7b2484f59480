from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def parse_backends(raw: str) -> dict[str, list[tuple[str, int]]]:
    """Parse a static backend table.

    Format: ``name=host:port,host:port;other=host:port``.
    A bare ``host:port`` list (no ``name=``) is returned under the key ``""``.
    """
    table: dict[str, list[tuple[str, int]]] = {}
    for group in raw.split(";"):
        group = group.strip()
        if not group:
            continue
        name, _, addrs = group.rpartition("=")
        out = table.setdefault(name.strip(), [])
        for addr in addrs.split(","):
            addr = addr.strip()
            if not addr:
                continue
            host, sep, port = addr.rpartition(":")
            if not sep or not host:
                raise ValueError(f"Invalid backend address {addr!r}; expected host:port.")
            out.append((host, int(port)))
    return table


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("CLB_DB_PATH", "clb.db")
    registry_url: str | None = os.getenv("CLB_REGISTRY_URL") or None
    request_timeout_s: float = _env_float("CLB_REQUEST_TIMEOUT_S", 5.0)
    log_level: str = os.getenv("CLB_LOG_LEVEL", "INFO")

    # Leases (same defaults as a Eureka client)
    lease_renewal_interval_s: int = _env_int("CLB_LEASE_RENEWAL_INTERVAL_S", 30)
    lease_duration_s: int = _env_int("CLB_LEASE_DURATION_S", 90)

    # Registry
    # Drop expired leases (and record an event) whenever instances are listed.
    evict_on_read: bool = _env_bool("CLB_EVICT_ON_READ", True)


settings = Settings()


@dataclass(frozen=True)
class InstanceConfig:
    """Configuration of one greeting instance."""

    service_name: str = "service-hi"
    host: str = "localhost"
    port: int = 8762
    label: str = "FIRST"
    weight: int = 1
    registry_url: str | None = None
    lease_renewal_interval_s: float = 30
    lease_duration_s: int = 90

    @classmethod
    def from_env(cls) -> "InstanceConfig":
        return cls(
            service_name=os.getenv("CLB_SERVICE_NAME", "service-hi"),
            host=os.getenv("CLB_INSTANCE_HOST", "localhost"),
            port=_env_int("CLB_PORT", 8762),
            label=os.getenv("CLB_LABEL", "FIRST"),
            weight=_env_int("CLB_WEIGHT", 1),
            registry_url=settings.registry_url,
            lease_renewal_interval_s=settings.lease_renewal_interval_s,
            lease_duration_s=settings.lease_duration_s,
        )


@dataclass(frozen=True)
class RibbonConfig:
    """Configuration of the routing client.

    ``backends`` wins over ``registry_url`` when both are set.
    """

    target_service: str = "service-hi"
    backends: dict[str, list[tuple[str, int]]] = field(default_factory=dict)
    registry_url: str | None = None
    strategy: str = "round_robin"
    port: int = 8764
    timeout_s: float = 5.0

    @classmethod
    def from_env(cls) -> "RibbonConfig":
        target = os.getenv("CLB_TARGET_SERVICE", "service-hi")
        backends = parse_backends(os.getenv("CLB_BACKENDS", ""))
        if "" in backends:
            backends.setdefault(target, []).extend(backends.pop(""))
        return cls(
            target_service=target,
            backends=backends,
            registry_url=settings.registry_url,
            strategy=os.getenv("CLB_STRATEGY", "round_robin"),
            port=_env_int("CLB_PORT", 8764),
            timeout_s=settings.request_timeout_s,
        )
