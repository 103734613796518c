"""Components installed from apt, optionally via a PPA or a signed third-party repository."""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ..errors import ActionFailed
from ..models import ComponentState
from ..runtime.apt import AptManager, AptRepository
from ..runtime.host import HostRunner
from ..runtime.signals import Signal
from .base import ActionResult

log = logging.getLogger(__name__)


class AptToolComponent:
    """A tool delivered by one or more apt packages.

    Presence is decided by running ``probe`` (e.g. ``terraform -version``) when
    given, otherwise by asking dpkg about every package. A missing tool whose
    repository registration is still on disk is reported as invalid so that
    install starts from a clean slate and rollback removes the leftovers.
    """

    def __init__(
        self,
        name: str,
        rank: int,
        packages: Sequence[str],
        apt: AptManager,
        host: HostRunner,
        *,
        probe: Optional[Sequence[str]] = None,
        repository: Optional[AptRepository] = None,
        ppa: Optional[str] = None,
        ppa_marker: Optional[str] = None,
        reversible: bool = True,
        upgrade: bool = False,
    ) -> None:
        self.name = name
        self.rank = rank
        self.packages = list(packages)
        self.apt = apt
        self.host = host
        self.probe = list(probe) if probe else None
        self.repository = repository
        self.ppa = ppa
        self.ppa_marker = ppa_marker
        self.reversible = reversible
        self.upgrade = upgrade

    # ---------------------------------------------------------------- detection

    def _tool_present(self) -> bool:
        if self.probe:
            return self.host.probe(self.probe).ok
        return all(self.apt.is_installed(package) for package in self.packages)

    def _has_leftovers(self) -> bool:
        if self.repository and self.apt.repository_registered(self.repository.name):
            return True
        if self.ppa_marker and self.apt.ppa_registered(self.ppa_marker):
            return True
        return False

    def detect(self) -> ComponentState:
        if self._tool_present():
            return ComponentState.present
        if self._has_leftovers():
            return ComponentState.present_but_invalid
        return ComponentState.absent

    def describe(self) -> str:
        if self.probe:
            result = self.host.probe(self.probe)
            return result.first_line if result.ok else "not found"
        missing = [p for p in self.packages if not self.apt.is_installed(p)]
        if missing:
            return f"missing {', '.join(missing)}"
        return f"{len(self.packages)} packages installed"

    # ------------------------------------------------------------------ actions

    def _own_sources(self) -> List[str]:
        sources = []
        if self.repository:
            sources.append(self.repository.url)
        if self.ppa_marker:
            sources.append(self.ppa_marker)
        return sources

    def _drop_sources(self) -> List[str]:
        notes: List[str] = []
        if self.repository:
            notes.extend(self.apt.unregister_repository(self.repository.name))
        if self.ppa and self.ppa_marker and self.apt.ppa_registered(self.ppa_marker):
            notes.extend(self.apt.remove_ppa(self.ppa, self.name))
        return notes

    def install(self) -> ActionResult:
        if self.ppa:
            added = self.apt.add_ppa(self.ppa)
            if added.exit_code != 0:
                raise ActionFailed(f"could not add {self.ppa}", added)
        if self.repository:
            self.apt.register_repository(self.repository)

        update = self.apt.update()
        if any(self.apt.trust_error_for(update, source) for source in self._own_sources()):
            self._drop_sources()
            raise ActionFailed(f"{self.name} repository failed signature verification", update)
        if update.exit_code != 0:
            raise ActionFailed("apt-get update failed", update)
        if update.signal == Signal.trust_error:
            log.warning("apt-get update reported an untrusted repository; continuing: %s", update.tail(1))

        if self.upgrade:
            upgraded = self.apt.upgrade()
            if not upgraded.ok:
                raise ActionFailed("apt-get upgrade failed", upgraded)

        installed = self.apt.install(self.packages)
        if not installed.ok:
            raise ActionFailed(f"apt-get install {' '.join(self.packages)} failed", installed)

        if not self._tool_present():
            raise ActionFailed(f"{self.name} installed but still not detected", installed)
        return ActionResult(detail=self.describe())

    def remove(self) -> ActionResult:
        notes: List[str] = []
        success = True
        retained = False
        diagnostics = ""

        installed = [package for package in self.packages if self.apt.is_installed(package)]
        if installed:
            removed = self.apt.remove(installed)
            if removed.ok:
                notes.append(f"removed {', '.join(installed)}")
            else:
                success = False
                diagnostics = removed.tail()
                notes.append(f"apt-get remove {' '.join(installed)} failed")
        elif self._tool_present():
            retained = True
            notes.append(f"retained: {self.name} is not managed by apt")

        # Auxiliary cleanup runs even when the package removal failed.
        notes.extend(self._drop_sources())

        log.info("%s removal: %s", self.name, "; ".join(notes) or "nothing to do")
        return ActionResult(
            detail="; ".join(notes) or "nothing to remove",
            success=success,
            changed=not retained,
            diagnostics=diagnostics,
        )
