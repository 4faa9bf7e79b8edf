"""Data models for hwtop."""

from collections.abc import Mapping
from dataclasses import dataclass, field

AGGREGATE_KEY = "aggregate"

# States counted as idle time when building ticks from a per-state breakdown.
IDLE_STATES = ("idle", "iowait")


def core_key(index: int) -> str:
    """Return the rate-tracking key for CPU core ``index``."""
    if index < 0:
        raise ValueError(f"core index must be >= 0, got {index}")
    return f"core-{index}"


@dataclass(slots=True, frozen=True)
class CpuTicks:
    """Immutable CPU tick counters read at one instant."""

    idle: int
    total: int
    states: Mapping[str, int] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if self.idle < 0 or self.total < 0:
            raise ValueError(f"tick counters must be non-negative: idle={self.idle} total={self.total}")
        if self.idle > self.total:
            raise ValueError(f"idle ticks exceed total: idle={self.idle} total={self.total}")

    @classmethod
    def from_states(cls, states: Mapping[str, int]) -> "CpuTicks":
        """
        Build ticks from a per-state breakdown.

        ``total`` is the sum of every state; ``idle`` is idle plus iowait.
        """
        breakdown = dict(states)
        idle = sum(breakdown.get(name, 0) for name in IDLE_STATES)
        return cls(idle=idle, total=sum(breakdown.values()), states=breakdown)


@dataclass(slots=True, frozen=True)
class MemoryStats:
    """Memory and swap usage in bytes."""

    total: int
    used: int
    free: int
    available: int
    cached: int
    buffers: int
    swap_total: int = 0
    swap_used: int = 0
    swap_free: int = 0

    @property
    def used_percent(self) -> float:
        if self.total == 0:
            return 0.0
        return self.used / self.total * 100.0

    @property
    def swap_percent(self) -> float:
        if self.swap_total == 0:
            return 0.0
        return self.swap_used / self.swap_total * 100.0
