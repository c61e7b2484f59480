from __future__ import annotations

from dataclasses import dataclass
from threading import Lock


@dataclass(frozen=True)
class Instance:
    service: str
    host: str
    port: int
    label: str = ""
    weight: int = 1

    @property
    def instance_id(self) -> str:
        return f"{self.host}:{self.service}:{self.port}"

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{int(self.port)}"


class RuntimeState:
    """In-memory routing state shared by concurrent request handlers."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.rr_index: dict[str, int] = {}  # key -> idx
        self.current_weights: dict[str, dict[str, int]] = {}  # service -> instance_id -> weight

    def next_index(self, key: str, n: int) -> int:
        with self.lock:
            if n <= 0:
                return 0
            i = self.rr_index.get(key, 0) % n
            self.rr_index[key] = (i + 1) % n
            return i

    def next_weighted(self, key: str, instances: list[Instance]) -> Instance | None:
        """Smooth weighted round-robin (nginx style).

        Every pick adds each weight to its running total, takes the largest,
        then subtracts the weight sum from the winner.
        """
        live = [i for i in instances if i.weight > 0]
        if not live:
            return None
        total = sum(i.weight for i in live)
        with self.lock:
            cur = self.current_weights.setdefault(key, {})
            ids = {i.instance_id for i in live}
            for stale in [k for k in cur if k not in ids]:
                del cur[stale]
            best: Instance | None = None
            for inst in live:
                cur[inst.instance_id] = cur.get(inst.instance_id, 0) + inst.weight
                if best is None or cur[inst.instance_id] > cur[best.instance_id]:
                    best = inst
            assert best is not None
            cur[best.instance_id] -= total
            return best
