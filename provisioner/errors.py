"""Exception types raised while converging managed components."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .runtime.host import CommandResult


class ProvisionerError(Exception):
    """Base class for provisioner errors."""


class PreconditionUnmet(ProvisionerError):
    """A host-wide requirement is missing; no component could succeed."""


class DetectionInconclusive(ProvisionerError):
    """A detection predicate could not decide; callers treat it as absent."""


class ActionFailed(ProvisionerError):
    """An install or remove action failed for a single component."""

    def __init__(self, message: str, result: Optional["CommandResult"] = None) -> None:
        super().__init__(message)
        self.result = result

    @property
    def diagnostics(self) -> str:
        if self.result is None:
            return ""
        return self.result.tail()


class ValidationFailed(ActionFailed):
    """A downloaded artifact kept failing its integrity checks."""

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts
