from __future__ import annotations

import random
from typing import Protocol

from .discovery import Resolver
from .errors import NoHealthyBackends
from .runtime import Instance, RuntimeState


class SelectionStrategy(Protocol):
    def choose(self, service: str, instances: list[Instance]) -> Instance: ...


class RoundRobinStrategy:
    def __init__(self, runtime: RuntimeState):
        self.runtime = runtime

    def choose(self, service: str, instances: list[Instance]) -> Instance:
        if not instances:
            raise NoHealthyBackends(f"No instances registered for service '{service}'.")
        # Stable order so the cursor means the same thing across lookups.
        ordered = sorted(instances, key=lambda i: (i.host, i.port))
        return ordered[self.runtime.next_index(f"svc:{service}", len(ordered))]


class RandomStrategy:
    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def choose(self, service: str, instances: list[Instance]) -> Instance:
        if not instances:
            raise NoHealthyBackends(f"No instances registered for service '{service}'.")
        return self.rng.choice(instances)


class WeightedStrategy:
    def __init__(self, runtime: RuntimeState):
        self.runtime = runtime

    def choose(self, service: str, instances: list[Instance]) -> Instance:
        if not instances:
            raise NoHealthyBackends(f"No instances registered for service '{service}'.")
        picked = self.runtime.next_weighted(f"svc:{service}", sorted(instances, key=lambda i: (i.host, i.port)))
        if picked is None:
            raise NoHealthyBackends(f"No routable instances for service '{service}' (all weights are 0).")
        return picked


STRATEGIES = ("round_robin", "random", "weighted")


def build_strategy(name: str, runtime: RuntimeState) -> SelectionStrategy:
    name = name.strip().lower().replace("-", "_")
    if name == "round_robin":
        return RoundRobinStrategy(runtime)
    if name == "random":
        return RandomStrategy()
    if name == "weighted":
        return WeightedStrategy(runtime)
    raise ValueError(f"Unknown strategy {name!r}; expected one of {', '.join(STRATEGIES)}.")


def select_backend(service: str, resolver: Resolver, strategy: SelectionStrategy) -> Instance:
    """Resolve a logical name and pick one of its instances."""
    return strategy.choose(service, resolver.resolve(service))
