"""Base definitions for managed components."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from ..models import ComponentState


@dataclass
class ActionResult:
    """Result of running an install or remove action for a component."""

    detail: str = ""
    success: bool = True
    # False when the action left the component as it found it (e.g. a tool
    # installed outside apt that rollback does not own).
    changed: bool = True
    via_fallback: bool = False
    attempts: int = 0
    diagnostics: str = ""


class ManagedComponent(Protocol):
    """Protocol for components with detect/install/remove operations.

    ``detect`` must not change the host and must tolerate the component being
    entirely missing.
    """

    name: str
    rank: int
    reversible: bool

    def detect(self) -> ComponentState:
        ...

    def describe(self) -> str:
        ...

    def install(self) -> ActionResult:
        ...

    def remove(self) -> ActionResult:
        ...
