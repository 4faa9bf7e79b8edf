"""Parsers for Linux /proc pseudo-files.

The same parsers serve the local provider (file contents) and the remote
provider (command output over SSH).
"""

from hwtop.errors import ParseError
from hwtop.models import CpuTicks, MemoryStats
from hwtop.scaling import MAX_U64, kib_to_bytes

# Column order of a /proc/stat cpu line. guest and guest_nice are left out:
# the kernel already accounts them inside user and nice.
CPU_STATES = ("user", "nice", "system", "idle", "iowait", "irq", "softirq", "steal")

# user, nice, system, idle
_MIN_CPU_FIELDS = 4


def parse_cpu_line(line: str) -> tuple[str, CpuTicks]:
    """
    Parse one ``cpu``/``cpuN`` line of /proc/stat.

    Returns:
        The line label (``"cpu"``, ``"cpu0"`` ...) and its ticks.

    Raises:
        ParseError: If the line is not a cpu line or a counter is not an integer.
    """
    fields = line.split()
    if not fields or not fields[0].startswith("cpu"):
        raise ParseError(f"not a /proc/stat cpu line: {line!r}")
    values = fields[1 : 1 + len(CPU_STATES)]
    if len(values) < _MIN_CPU_FIELDS:
        raise ParseError(f"too few counters in /proc/stat line: {line!r}")
    try:
        counters = [int(value) for value in values]
    except ValueError as err:
        raise ParseError(f"non-integer counter in /proc/stat line: {line!r}") from err
    if any(counter < 0 for counter in counters):
        raise ParseError(f"negative counter in /proc/stat line: {line!r}")
    return fields[0], CpuTicks.from_states(dict(zip(CPU_STATES, counters)))


def parse_aggregate(text: str) -> CpuTicks:
    """Parse the aggregate ``cpu`` line, which /proc/stat puts first."""
    for line in text.splitlines():
        if not line.strip():
            continue
        label, ticks = parse_cpu_line(line)
        if label != "cpu":
            raise ParseError(f"expected aggregate cpu line first, got {label!r}")
        return ticks
    raise ParseError("empty /proc/stat output")


def parse_cores(text: str) -> dict[int, CpuTicks]:
    """
    Parse every per-core ``cpuN`` line.

    Other lines (the aggregate line, intr, ctxt ...) are skipped.

    Raises:
        ParseError: If no per-core line is present or one is malformed.
    """
    cores: dict[int, CpuTicks] = {}
    for line in text.splitlines():
        head = line[:4]
        if not (head.startswith("cpu") and head[3:4].isdigit()):
            continue
        label, ticks = parse_cpu_line(line)
        cores[int(label[3:])] = ticks
    if not cores:
        raise ParseError("no per-core cpu lines in /proc/stat output")
    return cores


def parse_meminfo(text: str) -> MemoryStats:
    """
    Parse /proc/meminfo into byte counts.

    Used memory follows the classic ``free`` definition: total minus free,
    buffers and page cache.

    Raises:
        ParseError: If MemTotal is missing.
    """
    values: dict[str, int] = {}
    for line in text.splitlines():
        name, sep, rest = line.partition(":")
        if not sep:
            continue
        parts = rest.split()
        if not parts:
            continue
        try:
            kib = int(parts[0])
        except ValueError:
            continue
        if kib < 0 or kib > MAX_U64:
            continue
        values[name.strip()] = kib_to_bytes(kib)

    if "MemTotal" not in values:
        raise ParseError("MemTotal missing from /proc/meminfo output")

    total = values["MemTotal"]
    free = values.get("MemFree", 0)
    buffers = values.get("Buffers", 0)
    cached = values.get("Cached", 0)
    used = max(0, total - free - buffers - cached)

    swap_total = values.get("SwapTotal", 0)
    swap_free = values.get("SwapFree", 0)

    return MemoryStats(
        total=total,
        used=used,
        free=free,
        available=values.get("MemAvailable", free),
        cached=cached,
        buffers=buffers,
        swap_total=swap_total,
        swap_used=max(0, swap_total - swap_free),
        swap_free=swap_free,
    )


def parse_loadavg(text: str) -> tuple[float, float, float]:
    """Parse the 1, 5 and 15 minute load averages from /proc/loadavg."""
    fields = text.split()
    if len(fields) < 3:
        raise ParseError(f"unexpected /proc/loadavg format: {text!r}")
    try:
        return float(fields[0]), float(fields[1]), float(fields[2])
    except ValueError as err:
        raise ParseError(f"unexpected /proc/loadavg format: {text!r}") from err
