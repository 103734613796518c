"""Thin wrapper around systemctl for service-backed components."""
from __future__ import annotations

from pathlib import Path

from .host import CommandResult, HostRunner
from .signals import EXIT_NOT_FOUND, EXIT_TIMEOUT

# ``systemctl status`` exits 4 when the unit does not exist.
UNIT_UNKNOWN_EXIT = 4


class ServiceManager:
    def __init__(self, host: HostRunner, pid1_comm: Path = Path("/proc/1/comm")) -> None:
        self.host = host
        self.pid1_comm = pid1_comm

    def available(self) -> bool:
        """Return True when systemd manages this host (not the case on plain WSL)."""
        if self.host.which("systemctl") is None:
            return False
        try:
            if self.pid1_comm.read_text().strip() == "systemd":
                return True
        except OSError:
            pass
        if not self.host.probe(["systemctl", "--version"]).ok:
            return False
        return self.host.probe(["systemctl", "list-unit-files", "--no-pager"]).ok

    def unit_exists(self, name: str) -> bool:
        if self.host.which("systemctl") is None:
            return False
        result = self.host.probe(["systemctl", "status", name, "--no-pager"])
        return result.exit_code not in (UNIT_UNKNOWN_EXIT, EXIT_NOT_FOUND, EXIT_TIMEOUT)

    def is_active(self, name: str) -> bool:
        return self.host.probe(["systemctl", "is-active", "--quiet", name]).exit_code == 0

    def enable_now(self, name: str) -> CommandResult:
        return self.host.run(["systemctl", "enable", "--now", name], privileged=True)

    def stop(self, name: str) -> CommandResult:
        return self.host.run(["systemctl", "stop", name], privileged=True)

    def disable(self, name: str) -> CommandResult:
        return self.host.run(["systemctl", "disable", name], privileged=True)
