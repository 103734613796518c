"""AWS CLI v2 component, installed from the vendor bundle."""
from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import List, Sequence

from ..constants import AWSCLI_INSTALLED_PATHS, AWSCLI_UNINSTALLER
from ..errors import ActionFailed
from ..models import AwsCliConfig, ComponentState
from ..runtime.apt import AptManager
from ..runtime.artifacts import ArtifactFetcher, ArtifactSpec
from ..runtime.host import CommandResult, HostRunner
from .base import ActionResult


class AwsCliComponent:
    name = "awscli"
    reversible = True

    def __init__(
        self,
        config: AwsCliConfig,
        rank: int,
        apt: AptManager,
        host: HostRunner,
        fetcher: ArtifactFetcher,
        *,
        uninstaller: Path = Path(AWSCLI_UNINSTALLER),
        installed_paths: Sequence[str] = AWSCLI_INSTALLED_PATHS,
    ) -> None:
        self.config = config
        self.rank = rank
        self.apt = apt
        self.host = host
        self.fetcher = fetcher
        self.uninstaller = uninstaller
        self.installed_paths = [Path(p) for p in installed_paths]
        self.spec = ArtifactSpec(url=config.download_url, min_size=config.min_size)

    def _version(self) -> CommandResult:
        return self.host.probe(["aws", "--version"])

    def detect(self) -> ComponentState:
        if self._version().ok:
            return ComponentState.present
        # Files from a previous bundle install that no longer runs.
        if self.uninstaller.exists() or any(p.exists() for p in self.installed_paths):
            return ComponentState.present_but_invalid
        return ComponentState.absent

    def describe(self) -> str:
        result = self._version()
        return result.first_line if result.ok else "not found"

    def install(self) -> ActionResult:
        workdir = Path(tempfile.mkdtemp(prefix="awscli-"))
        try:
            fetched = self.fetcher.fetch(self.spec, workdir / "awscliv2.zip")
            unzip = self.host.run(["unzip", "-q", str(fetched.path), "-d", str(workdir)])
            if not unzip.ok:
                raise ActionFailed("could not unpack the AWS CLI bundle", unzip)
            installer = self.host.run([str(workdir / "aws" / "install"), "--update"], privileged=True)
            if not installer.ok:
                raise ActionFailed("AWS CLI installer failed", installer)
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

        version = self._version()
        if not version.ok:
            raise ActionFailed("AWS CLI installed but `aws --version` fails", version)
        return ActionResult(detail=version.first_line, attempts=fetched.attempts)

    def remove(self) -> ActionResult:
        notes: List[str] = []
        failures: List[CommandResult] = []

        if self.uninstaller.exists():
            result = self.host.run([str(self.uninstaller)], privileged=True)
            if result.ok:
                notes.append("ran bundled uninstall script")
            else:
                failures.append(result)
                notes.append("bundled uninstall script failed")

        if self.apt.is_installed("awscli"):
            result = self.apt.remove(["awscli"])
            if result.ok:
                notes.append("removed awscli package")
            else:
                failures.append(result)
                notes.append("apt-get remove awscli failed")

        # Whatever the uninstaller or apt left behind, even after a failure above.
        leftovers = [p for p in self.installed_paths if p.exists() or p.is_symlink()]
        if leftovers:
            result = self.host.run(["rm", "-rf", *[str(p) for p in leftovers]], privileged=True)
            if result.ok:
                notes.append(f"deleted {', '.join(str(p) for p in leftovers)}")
            else:
                failures.append(result)
                notes.append("could not delete AWS CLI files")

        if not notes:
            # `aws` runs but came from neither the bundle nor apt (pip, snap).
            return ActionResult(detail="retained: aws not installed by the bundle or apt", changed=False)
        return ActionResult(
            detail="; ".join(notes),
            success=not failures,
            diagnostics=failures[0].tail() if failures else "",
        )
