"""Sandbox network/compute stack applied and destroyed through Terraform."""
from __future__ import annotations

from pathlib import Path

from ..errors import ActionFailed
from ..models import ComponentState
from ..runtime.host import HostRunner
from .base import ActionResult

TF_FLAGS = ["-input=false", "-no-color"]


class SandboxStackComponent:
    """Delegates the declarative resource graph to ``terraform apply``/``destroy``.

    The stack counts as present when Terraform state tracks any resource.
    """

    name = "sandbox-stack"
    reversible = True

    def __init__(self, directory: Path, rank: int, host: HostRunner, apply_timeout: float = 1800.0) -> None:
        self.directory = directory
        self.rank = rank
        self.host = host
        self.apply_timeout = apply_timeout

    def _tracked_resources(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        result = self.host.probe(["terraform", "state", "list"], cwd=self.directory)
        if not result.ok:
            return []
        return [line for line in result.stdout.splitlines() if line.strip()]

    def detect(self) -> ComponentState:
        return ComponentState.present if self._tracked_resources() else ComponentState.absent

    def describe(self) -> str:
        resources = self._tracked_resources()
        return f"{len(resources)} resources tracked" if resources else "not applied"

    def _terraform(self, *args: str) -> None:
        if not self.directory.is_dir():
            raise ActionFailed(f"stack directory {self.directory} does not exist")
        result = self.host.run(
            ["terraform", *args, *TF_FLAGS],
            cwd=self.directory,
            timeout=self.apply_timeout,
        )
        if not result.ok:
            raise ActionFailed(f"terraform {args[0]} failed", result)

    def install(self) -> ActionResult:
        self._terraform("init")
        self._terraform("apply", "-auto-approve")
        return ActionResult(detail=self.describe())

    def remove(self) -> ActionResult:
        self._terraform("destroy", "-auto-approve")
        return ActionResult(detail="stack destroyed")
