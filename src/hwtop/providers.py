"""CPU and memory providers for local hosts.

Every provider owns one DeltaRateCalculator (and so one SnapshotStore). Two
providers never share baselines, so sampling several hosts in any order
cannot mix their rates.
"""

import logging
import socket
import sys
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path

import psutil

from hwtop.errors import AcquisitionError, UnsupportedPlatformError
from hwtop.models import AGGREGATE_KEY, CpuTicks, MemoryStats, core_key
from hwtop.procstat import parse_aggregate, parse_cores, parse_loadavg, parse_meminfo
from hwtop.rates import DeltaRateCalculator, SnapshotStore

logger = logging.getLogger(__name__)

# psutil reports CPU times as float seconds; they are turned into integer
# ticks at the same resolution as Linux USER_HZ.
TICKS_PER_SECOND = 100


class ProviderKind(Enum):
    """The closed set of supported adapters."""

    LOCAL_LINUX = "local-linux"
    REMOTE_LINUX = "remote-linux"
    WINDOWS = "windows"
    DARWIN = "darwin"


class CpuProvider(ABC):
    """
    Common interface of all platform adapters.

    Subclasses only produce raw readings (``sample_aggregate``,
    ``sample_cores``, ``memory``, ``load_average``) and raise
    AcquisitionError when a reading cannot be taken. The rate operations
    ``total_usage`` and ``usage`` are implemented here on top of them.
    """

    kind: ProviderKind

    def __init__(self, name: str) -> None:
        self.name = name
        self._rates = DeltaRateCalculator(SnapshotStore())

    @property
    def rates(self) -> DeltaRateCalculator:
        return self._rates

    @abstractmethod
    def sample_aggregate(self) -> CpuTicks:
        """Read whole-machine CPU ticks."""

    @abstractmethod
    def sample_cores(self) -> dict[int, CpuTicks]:
        """Read per-core CPU ticks keyed by core index."""

    @abstractmethod
    def memory(self) -> MemoryStats:
        """Read current memory and swap usage."""

    @abstractmethod
    def load_average(self) -> tuple[float, float, float]:
        """Read the 1, 5 and 15 minute load averages."""

    def total_usage(self) -> float:
        """
        Whole-machine CPU usage since the previous call.

        The first call returns 0.0. If the reading fails, AcquisitionError
        propagates and the stored baseline is left untouched.
        """
        return self.aggregate_rate(self.sample_aggregate())

    def usage(self) -> list[float]:
        """Per-core CPU usage since the previous call, ordered by core index."""
        return self.core_rates(self.sample_cores())

    def aggregate_rate(self, ticks: CpuTicks) -> float:
        """Feed an already taken aggregate reading to the rate calculator."""
        return self._rates.sample(AGGREGATE_KEY, ticks)

    def core_rates(self, cores: dict[int, CpuTicks]) -> list[float]:
        """Feed already taken per-core readings to the rate calculator."""
        return [self._rates.sample(core_key(index), ticks) for index, ticks in sorted(cores.items())]

    def close(self) -> None:
        """Release resources and forget every baseline."""
        self._rates.reset()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class LocalLinuxProvider(CpuProvider):
    """Reads /proc on the local Linux machine."""

    kind = ProviderKind.LOCAL_LINUX

    def __init__(self, name: str | None = None, proc_root: str | Path = "/proc") -> None:
        super().__init__(name or socket.gethostname())
        self._proc_root = Path(proc_root)

    def _read(self, filename: str) -> str:
        path = self._proc_root / filename
        try:
            return path.read_text(encoding="utf-8")
        except OSError as err:
            raise AcquisitionError(f"reading {path}: {err}") from err

    def sample_aggregate(self) -> CpuTicks:
        return parse_aggregate(self._read("stat"))

    def sample_cores(self) -> dict[int, CpuTicks]:
        return parse_cores(self._read("stat"))

    def memory(self) -> MemoryStats:
        return parse_meminfo(self._read("meminfo"))

    def load_average(self) -> tuple[float, float, float]:
        return parse_loadavg(self._read("loadavg"))


def ticks_from_cpu_times(cpu_times: object) -> CpuTicks:
    """Convert a psutil ``scputimes`` tuple to integer ticks."""
    states = {
        name: int(round(max(0.0, seconds) * TICKS_PER_SECOND))
        for name, seconds in cpu_times._asdict().items()  # type: ignore[attr-defined]
    }
    # guest time is already included in user/nice on Linux
    states.pop("guest", None)
    states.pop("guest_nice", None)
    return CpuTicks.from_states(states)


class PsutilCpuProvider(CpuProvider):
    """Shared psutil-backed implementation for Windows and Darwin."""

    def __init__(self, name: str | None = None) -> None:
        super().__init__(name or socket.gethostname())

    def sample_aggregate(self) -> CpuTicks:
        try:
            return ticks_from_cpu_times(psutil.cpu_times())
        except (psutil.Error, OSError) as err:
            raise AcquisitionError(f"psutil.cpu_times failed: {err}") from err

    def sample_cores(self) -> dict[int, CpuTicks]:
        try:
            per_cpu = psutil.cpu_times(percpu=True)
        except (psutil.Error, OSError) as err:
            raise AcquisitionError(f"psutil.cpu_times(percpu=True) failed: {err}") from err
        if not per_cpu:
            raise AcquisitionError("psutil reported no CPU cores")
        return {index: ticks_from_cpu_times(times) for index, times in enumerate(per_cpu)}

    def memory(self) -> MemoryStats:
        try:
            mem = psutil.virtual_memory()
            swap = psutil.swap_memory()
        except (psutil.Error, OSError) as err:
            raise AcquisitionError(f"psutil memory query failed: {err}") from err
        return MemoryStats(
            total=mem.total,
            used=mem.used,
            free=mem.free,
            available=mem.available,
            cached=getattr(mem, "cached", 0),
            buffers=getattr(mem, "buffers", 0),
            swap_total=swap.total,
            swap_used=swap.used,
            swap_free=swap.free,
        )

    def load_average(self) -> tuple[float, float, float]:
        try:
            load1, load5, load15 = psutil.getloadavg()
        except (psutil.Error, OSError) as err:
            raise AcquisitionError(f"psutil.getloadavg failed: {err}") from err
        return float(load1), float(load5), float(load15)


class WindowsProvider(PsutilCpuProvider):
    kind = ProviderKind.WINDOWS


class DarwinProvider(PsutilCpuProvider):
    kind = ProviderKind.DARWIN


def create_local_provider(name: str | None = None, platform: str | None = None) -> CpuProvider:
    """
    Create the provider for the machine hwtop runs on.

    Args:
        name: Display name; defaults to the hostname.
        platform: Override for ``sys.platform``.

    Raises:
        UnsupportedPlatformError: If no adapter exists for the platform.
    """
    platform = platform or sys.platform
    if platform.startswith("linux"):
        provider: CpuProvider = LocalLinuxProvider(name)
    elif platform == "win32":
        provider = WindowsProvider(name)
    elif platform == "darwin":
        provider = DarwinProvider(name)
    else:
        raise UnsupportedPlatformError(f"no local provider for platform {platform!r}")
    logger.debug("Created %s for %s", type(provider).__name__, provider.name)
    return provider
