"""Shared fixtures for hwtop tests."""

import logging
from collections.abc import Callable

import pytest

from hwtop.errors import AcquisitionError
from hwtop.models import CpuTicks, MemoryStats
from hwtop.providers import CpuProvider, ProviderKind

GIB = 1024**3


class FakeProvider(CpuProvider):
    """
    Provider with deterministic counters.

    Each aggregate reading advances total by 100 ticks and idle by
    ``100 - aggregate_busy``; each core reading advances every core by 100
    ticks with 50 idle. ``fail`` breaks every reading; ``fail_memory`` only
    the memory reading, after both CPU readings succeeded.
    """

    kind = ProviderKind.LOCAL_LINUX

    def __init__(self, name: str = "fake", aggregate_busy: int = 75, cores: int = 2) -> None:
        super().__init__(name)
        self.aggregate_busy = aggregate_busy
        self.core_count = cores
        self.fail = False
        self.fail_memory = False
        self.closed = False
        self._aggregate_reads = 0
        self._core_reads = 0

    def sample_aggregate(self) -> CpuTicks:
        if self.fail:
            raise AcquisitionError("fake acquisition failure")
        self._aggregate_reads += 1
        n = self._aggregate_reads
        return CpuTicks(idle=n * (100 - self.aggregate_busy), total=n * 100)

    def sample_cores(self) -> dict[int, CpuTicks]:
        if self.fail:
            raise AcquisitionError("fake acquisition failure")
        self._core_reads += 1
        n = self._core_reads
        return {index: CpuTicks(idle=n * 50, total=n * 100) for index in range(self.core_count)}

    def memory(self) -> MemoryStats:
        if self.fail or self.fail_memory:
            raise AcquisitionError("fake memory failure")
        return MemoryStats(
            total=16 * GIB,
            used=4 * GIB,
            free=8 * GIB,
            available=12 * GIB,
            cached=3 * GIB,
            buffers=1 * GIB,
            swap_total=2 * GIB,
            swap_used=0,
            swap_free=2 * GIB,
        )

    def load_average(self) -> tuple[float, float, float]:
        return (0.5, 0.25, 0.125)

    def close(self) -> None:
        super().close()
        self.closed = True


@pytest.fixture
def make_provider() -> Callable[..., FakeProvider]:
    """Factory for FakeProvider instances."""
    return FakeProvider


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way the test found it."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    paramiko_level = logging.getLogger("paramiko").level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("paramiko").setLevel(paramiko_level)
