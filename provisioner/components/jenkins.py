"""Jenkins component: systemd service from the vendor repository, or a standalone WAR."""
from __future__ import annotations

import getpass
import logging
import shutil
import tempfile
from pathlib import Path
from typing import List

from ..constants import JENKINS_KEY_URL, JENKINS_REPO_URL
from ..errors import ActionFailed
from ..models import ComponentState, JenkinsConfig
from ..rendering import TemplateRenderer
from ..runtime.apt import AptManager, AptRepository
from ..runtime.artifacts import ArtifactFetcher, ArtifactSpec, is_valid_artifact
from ..runtime.host import HostRunner
from ..runtime.systemd import ServiceManager
from .base import ActionResult

log = logging.getLogger(__name__)

JENKINS_PACKAGE = "jenkins"
JENKINS_UNIT = "jenkins"
JENKINS_REPOSITORY = AptRepository(
    name="jenkins",
    key_url=JENKINS_KEY_URL,
    url=JENKINS_REPO_URL,
    suite="binary/",
    component="",
)


class JenkinsComponent:
    """Installs Jenkins, preferring the packaged service.

    When systemd is missing or any step of the packaged install fails (most
    notably a repository signature error) the component falls back to the
    standalone WAR plus a launcher script. Once abandoned, the service path is
    not tried again by the same instance.
    """

    name = "jenkins"
    reversible = True

    def __init__(
        self,
        config: JenkinsConfig,
        rank: int,
        apt: AptManager,
        services: ServiceManager,
        host: HostRunner,
        fetcher: ArtifactFetcher,
        renderer: TemplateRenderer,
    ) -> None:
        self.config = config
        self.rank = rank
        self.apt = apt
        self.services = services
        self.host = host
        self.fetcher = fetcher
        self.renderer = renderer
        self.war_spec = ArtifactSpec(
            url=config.war_url,
            min_size=config.min_war_size,
            required_member="META-INF/",
        )
        self.service_attempts = 0
        self._service_abandoned = False

    @property
    def war_path(self) -> Path:
        return self.config.install_dir / "jenkins.war"

    @property
    def launcher_path(self) -> Path:
        return self.config.resolved_launcher()

    # ---------------------------------------------------------------- detection

    def detect(self) -> ComponentState:
        if self.apt.is_installed(JENKINS_PACKAGE):
            return ComponentState.present
        if self.war_path.exists():
            if is_valid_artifact(self.war_path, self.war_spec) and self.launcher_path.exists():
                return ComponentState.present
            return ComponentState.present_but_invalid
        if self.launcher_path.exists() or self.apt.repository_registered(JENKINS_REPOSITORY.name):
            return ComponentState.present_but_invalid
        return ComponentState.absent

    def describe(self) -> str:
        if self.apt.is_installed(JENKINS_PACKAGE):
            state = "active" if self.services.is_active(JENKINS_UNIT) else "inactive"
            return f"systemd service ({state})"
        if self.war_path.exists():
            return f"standalone war at {self.war_path}; launcher {self.launcher_path}"
        return "not installed"

    # ------------------------------------------------------------------ install

    def install(self) -> ActionResult:
        if not self.config.prefer_service:
            reason = "service install disabled in configuration"
        elif self._service_abandoned:
            reason = "service install abandoned earlier in this run"
        elif not self.services.available():
            reason = "systemd not available"
        else:
            try:
                return self._install_service()
            except ActionFailed as exc:
                self._service_abandoned = True
                reason = str(exc)
                log.warning("Jenkins service install failed (%s); falling back to standalone war", reason)

        result = self._install_war()
        result.via_fallback = True
        result.detail = f"standalone war ({reason}); start with {self.launcher_path}"
        return result

    def _install_service(self) -> ActionResult:
        self.service_attempts += 1
        try:
            self.apt.register_repository(JENKINS_REPOSITORY)
        except ActionFailed:
            self.apt.unregister_repository(JENKINS_REPOSITORY.name)
            raise

        update = self.apt.update()
        if self.apt.trust_error_for(update, JENKINS_REPOSITORY.url):
            self.apt.unregister_repository(JENKINS_REPOSITORY.name)
            raise ActionFailed("jenkins repository failed signature verification", update)
        if update.exit_code != 0:
            raise ActionFailed("apt-get update failed", update)

        installed = self.apt.install([JENKINS_PACKAGE])
        if not installed.ok:
            raise ActionFailed("apt-get install jenkins failed", installed)

        enabled = self.services.enable_now(JENKINS_UNIT)
        if not self.services.is_active(JENKINS_UNIT):
            raise ActionFailed("jenkins package installed but the service did not start", enabled)
        return ActionResult(detail="systemd service active")

    def _install_war(self) -> ActionResult:
        workdir = Path(tempfile.mkdtemp(prefix="jenkins-war-"))
        try:
            fetched = self.fetcher.fetch(self.war_spec, workdir / "jenkins.war")
            install_dir = str(self.config.install_dir)
            for argv in (
                ["mkdir", "-p", install_dir],
                ["chown", f"{getpass.getuser()}:", install_dir],
            ):
                result = self.host.run(argv, privileged=True)
                if not result.ok:
                    raise ActionFailed(f"could not prepare {install_dir}", result)
            moved = self.host.run(["mv", str(fetched.path), str(self.war_path)])
            if not moved.ok:
                raise ActionFailed(f"could not move war into {install_dir}", moved)
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

        self.renderer.write_launcher(self.launcher_path, self.war_path, self.config.http_port)
        log.info("Created launcher %s", self.launcher_path)
        return ActionResult(attempts=fetched.attempts)

    # ------------------------------------------------------------------- remove

    def remove(self) -> ActionResult:
        notes: List[str] = []
        success = True
        diagnostics = ""

        if self.services.unit_exists(JENKINS_UNIT):
            for verb, action in (("stopped", self.services.stop), ("disabled", self.services.disable)):
                result = action(JENKINS_UNIT)
                notes.append(f"service {verb}" if result.ok else f"service not {verb}")

        if self.apt.is_installed(JENKINS_PACKAGE):
            removed = self.apt.remove([JENKINS_PACKAGE])
            if removed.ok:
                notes.append("removed jenkins package")
            else:
                success = False
                diagnostics = removed.tail()
                notes.append("apt-get remove jenkins failed")

        if self.config.install_dir.exists():
            deleted = self.host.run(["rm", "-rf", str(self.config.install_dir)], privileged=True)
            if deleted.ok:
                notes.append(f"deleted {self.config.install_dir}")
            else:
                success = False
                diagnostics = diagnostics or deleted.tail()
                notes.append(f"could not delete {self.config.install_dir}")

        if self.launcher_path.exists():
            try:
                self.launcher_path.unlink()
                notes.append(f"deleted {self.launcher_path}")
            except OSError as exc:
                success = False
                notes.append(f"could not delete {self.launcher_path}: {exc}")

        notes.extend(self.apt.unregister_repository(JENKINS_REPOSITORY.name))
        return ActionResult(
            detail="; ".join(notes) or "nothing to remove",
            success=success,
            diagnostics=diagnostics,
        )
