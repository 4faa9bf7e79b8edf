"""Background sampling of one host for hwtop."""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from queue import Queue

from hwtop.config import MIN_POLL_RATE
from hwtop.errors import AcquisitionError
from hwtop.models import MemoryStats
from hwtop.providers import CpuProvider

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class HostSnapshot:
    """One sampling round of a host."""

    host: str
    platform: str
    cpu_total: float
    cpu_percent_per_core: list[float]
    memory: MemoryStats | None
    load_avg: tuple[float, float, float]
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SystemMonitor:
    """
    Samples one provider from a daemon thread.

    Every ``poll_rate`` seconds a HostSnapshot is pushed to the shared queue.
    A failed reading produces a snapshot with ``error`` set; the provider's
    baselines are left as they were so the next round measures across the gap.
    """

    def __init__(
        self,
        provider: CpuProvider,
        update_queue: Queue[HostSnapshot],
        poll_rate: float = 2.0,
        history: int = 60,
    ) -> None:
        """
        Initialize the SystemMonitor.

        Args:
            provider: Host to sample.
            update_queue: Thread-safe queue to push snapshots to.
            poll_rate: Seconds between samples. Default 2.0s.
            history: Number of aggregate CPU readings kept for sparklines.
        """
        self._provider = provider
        self._queue = update_queue
        self._poll_rate = max(MIN_POLL_RATE, poll_rate)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._cpu_history: deque[float] = deque(maxlen=history)

    @property
    def provider(self) -> CpuProvider:
        return self._provider

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(MIN_POLL_RATE, value)

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name=f"SystemMonitor-{self._provider.name}",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self._queue.put(self.collect_snapshot())
            except Exception:
                logger.exception("Unexpected error sampling %s", self._provider.name)

            self._stop_event.wait(timeout=self._poll_rate)

    def collect_snapshot(self) -> HostSnapshot:
        """
        Take one reading of the host.

        Every raw value is read before any rate is computed, so a failure
        anywhere in the round leaves all baselines as they were.
        """
        provider = self._provider
        try:
            aggregate = provider.sample_aggregate()
            cores = provider.sample_cores()
            memory = provider.memory()
            load_avg = provider.load_average()
        except AcquisitionError as err:
            logger.warning("Sampling %s failed: %s", provider.name, err)
            return HostSnapshot(
                host=provider.name,
                platform=provider.kind.value,
                cpu_total=0.0,
                cpu_percent_per_core=[],
                memory=None,
                load_avg=(0.0, 0.0, 0.0),
                error=str(err),
            )

        cpu_total = provider.aggregate_rate(aggregate)
        per_core = provider.core_rates(cores)
        self._cpu_history.append(cpu_total)
        return HostSnapshot(
            host=provider.name,
            platform=provider.kind.value,
            cpu_total=cpu_total,
            cpu_percent_per_core=per_core,
            memory=memory,
            load_avg=load_avg,
        )

    def get_cpu_history(self) -> list[float]:
        """Get the aggregate CPU usage history for sparkline rendering."""
        return list(self._cpu_history)
