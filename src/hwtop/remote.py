"""Remote Linux monitoring over SSH."""

import logging
import threading
from typing import Protocol

import paramiko

from hwtop.config import HostConfig
from hwtop.errors import RemoteCommandError, UnsupportedPlatformError
from hwtop.models import CpuTicks, MemoryStats
from hwtop.procstat import parse_aggregate, parse_cores, parse_loadavg, parse_meminfo
from hwtop.providers import CpuProvider, ProviderKind

logger = logging.getLogger(__name__)

AGGREGATE_COMMAND = "head -n 1 /proc/stat"
CORES_COMMAND = "grep '^cpu[0-9]' /proc/stat"
MEMINFO_COMMAND = "cat /proc/meminfo"
LOADAVG_COMMAND = "cat /proc/loadavg"
UNAME_COMMAND = "uname -s"


class CommandRunner(Protocol):
    def run(self, command: str) -> str: ...

    def close(self) -> None: ...


class SSHCommandRunner:
    """
    Runs shell commands on one remote host over a persistent SSH connection.

    The connection is opened lazily and reopened after a failure. Commands
    are serialized because they share a single transport.
    """

    def __init__(self, config: HostConfig) -> None:
        self._config = config
        self._client: paramiko.SSHClient | None = None
        self._lock = threading.Lock()

    @property
    def host(self) -> str:
        return self._config.host

    def _connect(self) -> paramiko.SSHClient:
        cfg = self._config
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        logger.info("Connecting to %s@%s:%d", cfg.username, cfg.host, cfg.port)
        client.connect(
            hostname=cfg.host,
            port=cfg.port,
            username=cfg.username,
            password=cfg.password,
            key_filename=cfg.key_filename,
            timeout=cfg.connect_timeout,
            banner_timeout=cfg.connect_timeout,
            auth_timeout=cfg.connect_timeout,
        )
        return client

    def _ensure_client(self) -> paramiko.SSHClient:
        client = self._client
        if client is not None:
            transport = client.get_transport()
            if transport is not None and transport.is_active():
                return client
            client.close()
            self._client = None
        self._client = self._connect()
        return self._client

    def _drop_client(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def run(self, command: str) -> str:
        """
        Execute ``command`` and return its standard output.

        Raises:
            RemoteCommandError: If connecting or executing fails, or the
                command exits non-zero without producing output.
        """
        with self._lock:
            try:
                client = self._ensure_client()
                _, stdout, stderr = client.exec_command(command, timeout=self._config.command_timeout)
                out = stdout.read().decode("utf-8", "ignore")
                err = stderr.read().decode("utf-8", "ignore")
                status = stdout.channel.recv_exit_status()
            except (paramiko.SSHException, OSError, EOFError) as exc:
                self._drop_client()
                raise RemoteCommandError(f"{self._config.host}: {command!r} failed: {exc}") from exc

        if status != 0 and not out.strip():
            raise RemoteCommandError(
                f"{self._config.host}: {command!r} exited with status {status}: {err.strip()}"
            )
        return out

    def close(self) -> None:
        with self._lock:
            self._drop_client()


class RemoteLinuxProvider(CpuProvider):
    """Reads /proc on a remote Linux host through a CommandRunner."""

    kind = ProviderKind.REMOTE_LINUX

    def __init__(self, name: str, runner: CommandRunner) -> None:
        super().__init__(name)
        self._runner = runner

    def sample_aggregate(self) -> CpuTicks:
        return parse_aggregate(self._runner.run(AGGREGATE_COMMAND))

    def sample_cores(self) -> dict[int, CpuTicks]:
        return parse_cores(self._runner.run(CORES_COMMAND))

    def memory(self) -> MemoryStats:
        return parse_meminfo(self._runner.run(MEMINFO_COMMAND))

    def load_average(self) -> tuple[float, float, float]:
        return parse_loadavg(self._runner.run(LOADAVG_COMMAND))

    def close(self) -> None:
        super().close()
        self._runner.close()


def detect_remote_os(runner: CommandRunner) -> str:
    """Return the lower-cased ``uname -s`` of the remote host."""
    return runner.run(UNAME_COMMAND).strip().lower()


def create_remote_provider(config: HostConfig, runner: CommandRunner | None = None) -> RemoteLinuxProvider:
    """
    Connect to a remote host and build its provider.

    Args:
        config: Host connection settings.
        runner: Command runner to use; an SSHCommandRunner by default.

    Raises:
        RemoteCommandError: If the host cannot be reached.
        UnsupportedPlatformError: If the host is not running Linux.
    """
    runner = runner if runner is not None else SSHCommandRunner(config)
    try:
        remote_os = detect_remote_os(runner)
    except RemoteCommandError:
        runner.close()
        raise
    if remote_os != "linux":
        runner.close()
        raise UnsupportedPlatformError(f"{config.name}: unsupported remote OS {remote_os!r}")
    logger.info("Monitoring %s (%s) as remote Linux host", config.name, config.host)
    return RemoteLinuxProvider(config.name, runner)
