"""Wrapper around subprocess for probing and mutating the local host."""
from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

from ..constants import DIAGNOSTIC_TAIL_LINES
from ..errors import PreconditionUnmet
from .signals import EXIT_NOT_FOUND, EXIT_TIMEOUT, Signal, classify

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    argv: List[str]
    exit_code: int
    signal: Signal
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.signal in (Signal.ok, Signal.already_present)

    @property
    def first_line(self) -> str:
        for text in (self.stdout, self.stderr):
            for line in text.splitlines():
                if line.strip():
                    return line.strip()
        return ""

    def tail(self, lines: int = DIAGNOSTIC_TAIL_LINES) -> str:
        combined = "\n".join(part.strip() for part in (self.stdout, self.stderr) if part.strip())
        return "\n".join(combined.splitlines()[-lines:])

    def describe(self) -> str:
        command = " ".join(shlex.quote(arg) for arg in self.argv)
        return f"{command} exited {self.exit_code} ({self.signal.value})"


@dataclass
class HostRunner:
    """Runs external commands with timeouts and a shared privilege prefix.

    The privilege context is acquired once per process with
    :meth:`acquire_privilege` and reused by every privileged call.
    """

    timeout: float = 600.0
    probe_timeout: float = 30.0
    _sudo: Optional[List[str]] = field(default=None, init=False, repr=False)

    # ------------------------------------------------------------ privilege

    @property
    def privileged(self) -> bool:
        return self._sudo is not None

    def acquire_privilege(self) -> None:
        if self._sudo is not None:
            return
        if os.geteuid() == 0:
            self._sudo = []
            log.debug("Running as root; no escalation prefix needed")
            return
        if shutil.which("sudo") is None:
            raise PreconditionUnmet("This tool requires sudo. Install sudo or run as root.")
        result = self._execute(["sudo", "-v"], timeout=self.probe_timeout * 4, capture=False)
        if result.exit_code != 0:
            raise PreconditionUnmet(f"sudo is present but could not be validated: {result.describe()}")
        self._sudo = ["sudo"]

    # ------------------------------------------------------------ commands

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name)

    def probe(
        self,
        argv: Sequence[str],
        *,
        timeout: Optional[float] = None,
        cwd: Optional[Path] = None,
    ) -> CommandResult:
        """Run a read-only query. Never escalates privileges."""
        return self._execute(list(argv), timeout=timeout or self.probe_timeout, cwd=cwd)

    def run(
        self,
        argv: Sequence[str],
        *,
        privileged: bool = False,
        timeout: Optional[float] = None,
        cwd: Optional[Path] = None,
        input_text: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> CommandResult:
        command = list(argv)
        if privileged:
            if self._sudo is None:
                raise PreconditionUnmet("privileged command requested before privileges were acquired")
            command = [*self._sudo, *command]
        log.info("+ %s", " ".join(shlex.quote(arg) for arg in command))
        result = self._execute(
            command,
            timeout=timeout or self.timeout,
            cwd=cwd,
            input_text=input_text,
            env=env,
        )
        if result.stdout.strip():
            log.debug("stdout: %s", result.stdout.strip())
        if result.stderr.strip():
            log.debug("stderr: %s", result.stderr.strip())
        return result

    def _execute(
        self,
        argv: List[str],
        *,
        timeout: float,
        cwd: Optional[Path] = None,
        input_text: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        capture: bool = True,
    ) -> CommandResult:
        process_env = os.environ.copy()
        if env:
            process_env.update(env)
        try:
            process = subprocess.run(
                argv,
                cwd=str(cwd) if cwd else None,
                env=process_env,
                input=input_text,
                capture_output=capture,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError as exc:
            return CommandResult(argv, EXIT_NOT_FOUND, Signal.not_found, "", str(exc))
        except subprocess.TimeoutExpired:
            detail = f"timed out after {timeout:.0f}s"
            return CommandResult(argv, EXIT_TIMEOUT, Signal.timeout, "", detail)
        stdout = process.stdout or ""
        stderr = process.stderr or ""
        signal = classify(process.returncode, f"{stdout}\n{stderr}")
        return CommandResult(argv, process.returncode, signal, stdout, stderr)
