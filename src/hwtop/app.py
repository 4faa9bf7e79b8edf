"""hwtop - Textual viewer and command line entry point."""

import argparse
import logging
import sys
from enum import Enum
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.css.query import NoMatches
from textual.widgets import DataTable, Footer, Static

from hwtop.config import AppConfig, load_config
from hwtop.errors import HwtopError
from hwtop.logs import setup_logging
from hwtop.monitor import HostSnapshot, SystemMonitor
from hwtop.providers import CpuProvider, create_local_provider
from hwtop.remote import create_remote_provider

logger = logging.getLogger(__name__)

SPARK_CHARS = "▁▂▃▄▅▆▇█"


class SortKey(Enum):
    """Sort keys for the host table."""

    HOST = "host"
    CPU = "cpu"
    MEM = "mem"


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{size:5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def render_bar(percent: float, color: str, width: int = 20) -> str:
    """Render a percentage as a Rich-markup bar of ``width`` cells."""
    filled = min(width, max(0, int(percent / (100 / width))))
    return f"[{color}]" + "█" * filled + f"[/{color}]" + "[dim]" + "░" * (width - filled) + "[/dim]"


def sparkline(values: list[float]) -> str:
    """Render 0-100 values as a block-character sparkline."""
    top = len(SPARK_CHARS) - 1
    return "".join(SPARK_CHARS[min(top, max(0, int(v / 100 * top + 0.5)))] for v in values)


def format_snapshot_line(snapshot: HostSnapshot) -> str:
    """One-line summary of a snapshot, used by ``--no-ui``."""
    if not snapshot.ok:
        return f"{snapshot.host:<16} {snapshot.platform:<13} ERROR {snapshot.error}"
    mem = snapshot.memory
    mem_part = f"mem {mem.used_percent:5.1f}%" if mem is not None else "mem   n/a"
    cores = " ".join(f"{usage:.0f}" for usage in snapshot.cpu_percent_per_core)
    load = " ".join(f"{value:.2f}" for value in snapshot.load_avg)
    return (
        f"{snapshot.host:<16} {snapshot.platform:<13} cpu {snapshot.cpu_total:5.1f}% "
        f"{mem_part} load {load} cores [{cores}]"
    )


class HeaderStats(Static):
    """Header widget showing CPU and memory statistics of the highlighted host."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._snapshot: HostSnapshot | None = None
        self._history: list[float] = []

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_cpu_info(), id="cpu-info"),
            Static(self._get_mem_info(), id="mem-info"),
        )

    @property
    def host(self) -> str | None:
        return self._snapshot.host if self._snapshot is not None else None

    def update_stats(self, snapshot: HostSnapshot, history: list[float] | None = None) -> None:
        """Show ``snapshot`` in the header."""
        self._snapshot = snapshot
        self._history = history or []
        self._refresh_display()

    def _refresh_display(self) -> None:
        if not self.is_mounted:
            return
        self.query_one("#cpu-info", Static).update(self._get_cpu_info())
        self.query_one("#mem-info", Static).update(self._get_mem_info())

    def _get_cpu_info(self) -> str:
        """Get CPU info display."""
        snapshot = self._snapshot
        if snapshot is None:
            return "Loading CPU info..."
        if not snapshot.ok:
            return f"[b]{snapshot.host}[/b] ({snapshot.platform})\n[red]{snapshot.error}[/red]"
        lines = [
            f"[b]{snapshot.host}[/b] ({snapshot.platform})",
            f"All   \\[{render_bar(snapshot.cpu_total, 'green')}] {snapshot.cpu_total:5.1f}%",
        ]
        for i, usage in enumerate(snapshot.cpu_percent_per_core):
            lines.append(f"CPU{i:<2} \\[{render_bar(usage, 'green')}] {usage:5.1f}%")
        if self._history:
            lines.append(f"Hist  {sparkline(self._history[-30:])}")
        return "\n".join(lines)

    def _get_mem_info(self) -> str:
        """Get memory info display."""
        snapshot = self._snapshot
        if snapshot is None or snapshot.memory is None:
            return "Loading memory info..."

        mem = snapshot.memory
        mem_used_gb = mem.used / (1024**3)
        mem_total_gb = mem.total / (1024**3)
        swap_used_gb = mem.swap_used / (1024**3)
        swap_total_gb = mem.swap_total / (1024**3)
        load_avg = snapshot.load_avg

        return (
            f"Mem\\[{render_bar(mem.used_percent, 'cyan')}] {mem_used_gb:.1f}G/{mem_total_gb:.1f}G\n"
            f"Swp\\[{render_bar(mem.swap_percent, 'yellow')}] {swap_used_gb:.1f}G/{swap_total_gb:.1f}G\n"
            f"Load average: {load_avg[0]:.2f} {load_avg[1]:.2f} {load_avg[2]:.2f}"
        )


class HostTable(Container):
    """Container for the per-host data table."""

    DEFAULT_CSS = """
    HostTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HostTable."""
        super().__init__(*args, **kwargs)
        self._snapshots: dict[str, HostSnapshot] = {}
        self._order: list[str] = []
        self._sort_key: SortKey = SortKey.HOST
        self._sort_reverse: bool = False

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    @property
    def order(self) -> list[str]:
        """Host names in display order."""
        return list(self._order)

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        current_index = keys.index(self._sort_key)
        self._sort_key = keys[(current_index + 1) % len(keys)]
        # Busiest hosts first for usage columns
        self._sort_reverse = self._sort_key in (SortKey.CPU, SortKey.MEM)
        self._rebuild()
        return self._sort_key

    def compose(self) -> ComposeResult:
        """Compose the host table."""
        yield DataTable(id="host-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#host-table", DataTable)
        table.cursor_type = "row"

        table.add_column("HOST", key="host", width=16)
        table.add_column("PLATFORM", key="platform", width=13)
        table.add_column("CPU%", key="cpu", width=7)
        table.add_column("MEM%", key="mem", width=7)
        table.add_column("USED", key="used", width=8)
        table.add_column("TOTAL", key="total", width=8)
        table.add_column("LOAD", key="load", width=16)
        table.add_column("STATUS", key="status")

    def update_host(self, snapshot: HostSnapshot) -> None:
        """Insert or refresh the row of ``snapshot.host``."""
        self._snapshots[snapshot.host] = snapshot
        self._rebuild()

    def _sort_hosts(self) -> list[str]:
        def mem_percent(s: HostSnapshot) -> float:
            return s.memory.used_percent if s.memory is not None else -1.0

        key_func = {
            SortKey.HOST: lambda s: s.host.lower(),
            SortKey.CPU: lambda s: s.cpu_total if s.ok else -1.0,
            SortKey.MEM: mem_percent,
        }
        ordered = sorted(self._snapshots.values(), key=key_func[self._sort_key], reverse=self._sort_reverse)
        return [s.host for s in ordered]

    def _rebuild(self) -> None:
        """Redraw rows in sort order, keeping the cursor on the same host."""
        table = self.query_one("#host-table", DataTable)
        selected = self._order[table.cursor_row] if 0 <= table.cursor_row < len(self._order) else None

        self._order = self._sort_hosts()
        table.clear()
        for host in self._order:
            table.add_row(*self._row_cells(self._snapshots[host]), key=host)

        if selected in self._order:
            table.move_cursor(row=self._order.index(selected))

    @staticmethod
    def _row_cells(s: HostSnapshot) -> tuple[str, ...]:
        if not s.ok or s.memory is None:
            return (s.host[:16], s.platform, "-", "-", "-", "-", "-", f"error: {s.error}"[:60])
        load = " ".join(f"{value:.2f}" for value in s.load_avg)
        return (
            s.host[:16],
            s.platform,
            f"{s.cpu_total:5.1f}",
            f"{s.memory.used_percent:5.1f}",
            format_bytes(s.memory.used),
            format_bytes(s.memory.total),
            load,
            "ok",
        )


class HwtopApp(App):
    """Main hwtop application."""

    TITLE = "hwtop"
    SUB_TITLE = "Local and remote resource monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #cpu-info {
        width: 1fr;
        padding-right: 2;
    }

    #mem-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
    ]

    def __init__(self, providers: list[CpuProvider], poll_rate: float = 2.0, history: int = 60) -> None:
        """
        Initialize the HwtopApp.

        Args:
            providers: Hosts to monitor, one SystemMonitor each.
            poll_rate: Seconds between samples.
            history: Aggregate CPU readings kept per host.

        Raises:
            ValueError: If two providers share a name.
        """
        super().__init__()
        names = [provider.name for provider in providers]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate host names: {', '.join(duplicates)}")
        self._update_queue: Queue[HostSnapshot] = Queue()
        self._monitors = {
            provider.name: SystemMonitor(provider, self._update_queue, poll_rate=poll_rate, history=history)
            for provider in providers
        }
        self._latest: dict[str, HostSnapshot] = {}
        self._selected: str | None = providers[0].name if providers else None

    @property
    def monitors(self) -> list[SystemMonitor]:
        return list(self._monitors.values())

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats")
        yield HostTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the monitors when the app is mounted."""
        for monitor in self._monitors.values():
            monitor.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue and refresh the UI with the newest snapshot per host."""
        fresh: dict[str, HostSnapshot] = {}
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break
            fresh[snapshot.host] = snapshot

        for snapshot in fresh.values():
            self._update_ui(snapshot)

    def _update_ui(self, snapshot: HostSnapshot) -> None:
        """Update the UI with a new host snapshot."""
        self._latest[snapshot.host] = snapshot
        try:
            host_table = self.query_one(HostTable)
        except NoMatches:
            return
        host_table.update_host(snapshot)
        if snapshot.host == self._selected:
            self._show_header(snapshot.host)

    def _show_header(self, host: str) -> None:
        snapshot = self._latest.get(host)
        if snapshot is None:
            return
        monitor = self._monitors.get(host)
        history = monitor.get_cpu_history() if monitor is not None else []
        # widgets are gone while the app shuts down
        try:
            header = self.query_one("#header-stats", HeaderStats)
        except NoMatches:
            return
        header.update_stats(snapshot, history)

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        """Follow the table cursor with the header."""
        if event.row_key is None or event.row_key.value is None:
            return
        self._selected = event.row_key.value
        self._show_header(self._selected)

    def action_sort(self) -> None:
        """Handle sort action - cycle through sort keys."""
        new_sort_key = self.query_one(HostTable).cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self.shutdown()
        self.exit()

    def shutdown(self) -> None:
        """Stop every monitor and release its provider."""
        for monitor in self._monitors.values():
            monitor.stop()
            monitor.provider.close()


def build_providers(config: AppConfig) -> list[CpuProvider]:
    """
    Create the local provider (when enabled) and one provider per remote host.

    Hosts that cannot be reached at startup are logged and skipped. So is a
    remote host whose name matches the local hostname.
    """
    providers: list[CpuProvider] = []
    if config.monitor.include_local:
        providers.append(create_local_provider())
    for host in config.hosts:
        if any(provider.name == host.name for provider in providers):
            logger.error("Skipping host %s: name already used by another monitored host", host.name)
            continue
        try:
            providers.append(create_remote_provider(host))
        except HwtopError as err:
            logger.error("Skipping host %s: %s", host.name, err)
    return providers


def run_headless(monitors: list[SystemMonitor], update_queue: Queue[HostSnapshot]) -> None:
    """Print one line per snapshot until interrupted."""
    for monitor in monitors:
        monitor.start()
    try:
        while True:
            print(format_snapshot_line(update_queue.get()), flush=True)
    except KeyboardInterrupt:
        pass
    finally:
        for monitor in monitors:
            monitor.stop()
            monitor.provider.close()


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="hwtop", description="Local and remote resource monitor")
    p.add_argument("--config", type=str, default=None, help="Path to a YAML config file")
    p.add_argument("--poll-rate", type=float, default=None, help="Seconds between samples")
    p.add_argument("--log-level", type=str, default=None, help="Override the configured log level")
    p.add_argument("--no-ui", action="store_true", help="Print snapshots instead of running the TUI")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Entry point for the hwtop application."""
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    try:
        config = load_config(args.config)
    except HwtopError as err:
        print(f"hwtop: {err}", file=sys.stderr)
        return 2

    poll_rate = args.poll_rate if args.poll_rate is not None else config.monitor.poll_rate
    setup_logging(args.log_level or config.log_level, config.log_file, console=args.no_ui)

    try:
        providers = build_providers(config)
    except HwtopError as err:
        print(f"hwtop: {err}", file=sys.stderr)
        return 1
    if not providers:
        print("hwtop: nothing to monitor", file=sys.stderr)
        return 1

    if args.no_ui:
        update_queue: Queue[HostSnapshot] = Queue()
        monitors = [
            SystemMonitor(provider, update_queue, poll_rate=poll_rate, history=config.monitor.history)
            for provider in providers
        ]
        run_headless(monitors, update_queue)
    else:
        app = HwtopApp(providers, poll_rate=poll_rate, history=config.monitor.history)
        try:
            app.run()
        finally:
            app.shutdown()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
