"""Tests for the SystemMonitor class."""

from queue import Queue

import pytest

from hwtop.errors import AcquisitionError
from hwtop.models import AGGREGATE_KEY, core_key
from hwtop.monitor import HostSnapshot, SystemMonitor


class TestHostSnapshot:
    """Tests for HostSnapshot dataclass."""

    def test_host_snapshot_creation(self):
        """Test HostSnapshot can be created with all fields."""
        snapshot = HostSnapshot(
            host="web-1",
            platform="remote-linux",
            cpu_total=42.0,
            cpu_percent_per_core=[10.0, 20.0, 30.0, 40.0],
            memory=None,
            load_avg=(1.0, 0.5, 0.25),
        )
        assert snapshot.cpu_percent_per_core == [10.0, 20.0, 30.0, 40.0]
        assert snapshot.load_avg == (1.0, 0.5, 0.25)
        assert snapshot.ok
        assert snapshot.error is None

    def test_host_snapshot_uses_slots(self):
        """Test HostSnapshot uses __slots__ for memory efficiency."""
        snapshot = HostSnapshot(
            host="",
            platform="",
            cpu_total=0.0,
            cpu_percent_per_core=[],
            memory=None,
            load_avg=(0.0, 0.0, 0.0),
            error="down",
        )
        # Slots-based dataclasses don't have __dict__
        assert not hasattr(snapshot, "__dict__")
        assert not snapshot.ok


class TestSystemMonitor:
    """Tests for SystemMonitor class."""

    def test_monitor_creation(self, make_provider):
        """Test SystemMonitor can be instantiated."""
        queue: Queue[HostSnapshot] = Queue()
        provider = make_provider()
        monitor = SystemMonitor(provider, queue)

        assert monitor.poll_rate == 2.0
        assert monitor.provider is provider
        assert not monitor.is_running

    def test_monitor_custom_poll_rate(self, make_provider):
        """Test SystemMonitor with custom poll rate."""
        queue: Queue[HostSnapshot] = Queue()
        monitor = SystemMonitor(make_provider(), queue, poll_rate=1.0)

        assert monitor.poll_rate == 1.0

    def test_poll_rate_minimum(self, make_provider):
        """Test poll rate has a minimum value."""
        queue: Queue[HostSnapshot] = Queue()
        monitor = SystemMonitor(make_provider(), queue)

        monitor.poll_rate = 0.01  # Very small value
        assert monitor.poll_rate >= 0.1  # Should be clamped to minimum

    def test_monitor_start_stop(self, make_provider):
        """Test SystemMonitor can be started and stopped."""
        queue: Queue[HostSnapshot] = Queue()
        monitor = SystemMonitor(make_provider(), queue, poll_rate=0.1)

        assert not monitor.is_running

        monitor.start()
        assert monitor.is_running

        monitor.stop()
        assert not monitor.is_running

    def test_monitor_start_idempotent(self, make_provider):
        """Test starting an already running monitor is safe."""
        queue: Queue[HostSnapshot] = Queue()
        monitor = SystemMonitor(make_provider(), queue, poll_rate=0.1)

        monitor.start()
        thread1 = monitor._thread

        monitor.start()  # Should not create a new thread
        thread2 = monitor._thread

        assert thread1 is thread2
        monitor.stop()

    def test_monitor_collects_data(self, make_provider):
        """Test SystemMonitor collects and queues data."""
        queue: Queue[HostSnapshot] = Queue()
        monitor = SystemMonitor(make_provider(), queue, poll_rate=0.1)

        monitor.start()

        try:
            first = queue.get(timeout=2.0)
            second = queue.get(timeout=2.0)

            assert isinstance(first, HostSnapshot)
            assert first.host == "fake"
            assert first.platform == "local-linux"
            assert first.cpu_total == 0.0
            assert second.cpu_total == pytest.approx(75.0)
            assert second.memory is not None
        finally:
            monitor.stop()

    def test_daemon_thread(self, make_provider):
        """Test monitor thread is a daemon thread named after the host."""
        queue: Queue[HostSnapshot] = Queue()
        monitor = SystemMonitor(make_provider(), queue, poll_rate=0.1)

        monitor.start()

        try:
            assert monitor._thread is not None
            assert monitor._thread.daemon is True
            assert monitor._thread.name == "SystemMonitor-fake"
        finally:
            monitor.stop()


class TestCollectSnapshot:
    """Tests for SystemMonitor.collect_snapshot."""

    def test_warm_up_then_rates(self, make_provider):
        """Test the first round reports zero and later rounds report usage."""
        monitor = SystemMonitor(make_provider(aggregate_busy=40, cores=4), Queue())

        first = monitor.collect_snapshot()
        assert first.cpu_total == 0.0
        assert first.cpu_percent_per_core == [0.0, 0.0, 0.0, 0.0]

        second = monitor.collect_snapshot()
        assert second.cpu_total == pytest.approx(40.0)
        assert second.cpu_percent_per_core == [pytest.approx(50.0)] * 4
        assert second.load_avg == (0.5, 0.25, 0.125)
        assert second.memory.used_percent == pytest.approx(25.0)

    def test_failure_produces_error_snapshot(self, make_provider):
        """Test a failed reading is reported without losing baselines."""
        provider = make_provider()
        monitor = SystemMonitor(provider, Queue())
        monitor.collect_snapshot()
        baseline = provider.rates.store.get(AGGREGATE_KEY)

        provider.fail = True
        failed = monitor.collect_snapshot()

        assert not failed.ok
        assert "fake acquisition failure" in failed.error
        assert failed.cpu_total == 0.0
        assert failed.cpu_percent_per_core == []
        assert failed.memory is None
        assert provider.rates.store.get(AGGREGATE_KEY) == baseline

        provider.fail = False
        assert monitor.collect_snapshot().cpu_total == pytest.approx(75.0)

    def test_late_failure_keeps_cpu_baselines(self, make_provider):
        """Test a failure after the CPU reads leaves aggregate and core baselines alone."""
        provider = make_provider()
        monitor = SystemMonitor(provider, Queue())
        monitor.collect_snapshot()
        aggregate_before = provider.rates.store.get(AGGREGATE_KEY)
        core_before = provider.rates.store.get(core_key(0))

        provider.fail_memory = True
        failed = monitor.collect_snapshot()

        assert "fake memory failure" in failed.error
        assert provider.rates.store.get(AGGREGATE_KEY) == aggregate_before
        assert provider.rates.store.get(core_key(0)) == core_before
        assert monitor.get_cpu_history() == [0.0]

        provider.fail_memory = False
        recovered = monitor.collect_snapshot()
        assert recovered.cpu_total == pytest.approx(75.0)
        assert recovered.cpu_percent_per_core == [pytest.approx(50.0)] * 2

    def test_core_failure_keeps_aggregate_baseline(self, make_provider, monkeypatch):
        """Test a per-core read failure does not advance the aggregate stream."""
        provider = make_provider()
        monitor = SystemMonitor(provider, Queue())
        monitor.collect_snapshot()
        before = provider.rates.store.get(AGGREGATE_KEY)

        def cores_unavailable():
            raise AcquisitionError("cores unavailable")

        monkeypatch.setattr(provider, "sample_cores", cores_unavailable)
        failed = monitor.collect_snapshot()

        assert failed.error == "cores unavailable"
        assert failed.cpu_total == 0.0
        assert provider.rates.store.get(AGGREGATE_KEY) == before

    def test_cpu_history(self, make_provider):
        """Test successful rounds are recorded and failures are not."""
        provider = make_provider()
        monitor = SystemMonitor(provider, Queue(), history=3)

        for _ in range(2):
            monitor.collect_snapshot()
        provider.fail = True
        monitor.collect_snapshot()
        provider.fail = False
        for _ in range(3):
            monitor.collect_snapshot()

        history = monitor.get_cpu_history()
        assert len(history) == 3
        assert history == [pytest.approx(75.0)] * 3

    def test_poll_loop_survives_failures(self, make_provider):
        """Test the background loop keeps producing snapshots after errors."""
        queue: Queue[HostSnapshot] = Queue()
        provider = make_provider()
        provider.fail = True
        monitor = SystemMonitor(provider, queue, poll_rate=0.1)

        monitor.start()

        try:
            assert not queue.get(timeout=2.0).ok
            provider.fail = False
            snapshot = queue.get(timeout=2.0)
            while not snapshot.ok:
                snapshot = queue.get(timeout=2.0)
            assert snapshot.host == "fake"
        finally:
            monitor.stop()
