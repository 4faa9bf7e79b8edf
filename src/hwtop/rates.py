"""Counter-to-rate conversion for monotonically increasing CPU tick counters."""

import logging
import threading

from hwtop.models import CpuTicks

logger = logging.getLogger(__name__)


class SnapshotStore:
    """
    Most recent raw tick reading per tracked key.

    One store belongs to exactly one provider instance. Every method runs as a
    single critical section, so ``swap`` gives callers an atomic
    read-modify-write per key.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshots: dict[str, CpuTicks] = {}

    def get(self, key: str) -> CpuTicks | None:
        with self._lock:
            return self._snapshots.get(key)

    def put(self, key: str, ticks: CpuTicks) -> None:
        with self._lock:
            self._snapshots[key] = ticks

    def swap(self, key: str, ticks: CpuTicks) -> CpuTicks | None:
        """Store ``ticks`` under ``key`` and return the value it replaced."""
        with self._lock:
            prior = self._snapshots.get(key)
            self._snapshots[key] = ticks
            return prior

    def discard(self, key: str) -> None:
        with self._lock:
            self._snapshots.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._snapshots)

    def clear(self) -> None:
        with self._lock:
            self._snapshots.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._snapshots


def is_counter_regression(prior: CpuTicks, current: CpuTicks) -> bool:
    """
    Return True when ``current`` is lower than ``prior`` on any counter.

    Tick counters only move backwards when their source restarts (host
    reboot, provider restart), so the pair carries no usable delta.
    """
    return current.total < prior.total or current.idle < prior.idle


def usage_percent(prior: CpuTicks, current: CpuTicks) -> float:
    """
    Utilisation between two readings, clamped to [0, 100].

    Returns 0.0 for a counter regression or when no ticks elapsed.
    """
    if is_counter_regression(prior, current):
        return 0.0

    delta_total = current.total - prior.total
    if delta_total == 0:
        return 0.0

    delta_idle = current.idle - prior.idle
    percent = (1.0 - delta_idle / delta_total) * 100.0
    return max(0.0, min(100.0, percent))


class DeltaRateCalculator:
    """
    Turns successive tick readings into utilisation percentages.

    The first reading for a key only establishes a baseline and yields 0.0.
    Every call replaces the baseline with the new reading, whether or not a
    rate could be derived from it.
    """

    def __init__(self, store: SnapshotStore | None = None) -> None:
        """
        Initialize the calculator.

        Args:
            store: Snapshot store to keep baselines in. A fresh store is
                created when omitted; stores must not be shared between
                providers.
        """
        self._store = store if store is not None else SnapshotStore()

    @property
    def store(self) -> SnapshotStore:
        return self._store

    def sample(self, key: str, ticks: CpuTicks) -> float:
        """
        Record ``ticks`` for ``key`` and return usage since the previous reading.

        Args:
            key: Rate-tracking stream, e.g. ``"aggregate"`` or ``"core-0"``.
            ticks: Counters read from the host just now.

        Returns:
            Usage percentage in [0, 100]; 0.0 on warm-up, when counters did
            not advance, or after a counter regression.
        """
        prior = self._store.swap(key, ticks)
        if prior is None:
            logger.debug("Baseline established for %s", key)
            return 0.0

        if is_counter_regression(prior, ticks):
            logger.debug(
                "Counter regression on %s (total %d -> %d), re-baselining",
                key,
                prior.total,
                ticks.total,
            )
            return 0.0

        return usage_percent(prior, ticks)

    def reset(self, key: str | None = None) -> None:
        """Drop the baseline for ``key``, or every baseline when ``key`` is None."""
        if key is None:
            self._store.clear()
        else:
            self._store.discard(key)
