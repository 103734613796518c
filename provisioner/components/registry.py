"""Assembles the ordered list of managed components from configuration."""
from __future__ import annotations

from typing import Callable, List, Optional

import httpx

from ..constants import ANSIBLE_PPA, ANSIBLE_PPA_MARKER, COMPONENT_RANKS, HASHICORP_KEY_URL, HASHICORP_REPO_URL
from ..models import Direction, HostConfig
from ..rendering import TemplateRenderer
from ..runtime.apt import AptManager, AptRepository
from ..runtime.artifacts import ArtifactFetcher
from ..runtime.host import HostRunner
from ..runtime.systemd import ServiceManager
from .awscli import AwsCliComponent
from .base import ManagedComponent
from .jenkins import JENKINS_PACKAGE, JenkinsComponent
from .packages import AptToolComponent
from .stack import SandboxStackComponent

HASHICORP_REPOSITORY = AptRepository(
    name="hashicorp",
    key_url=HASHICORP_KEY_URL,
    url=HASHICORP_REPO_URL,
)

Finalizer = Callable[[Direction], Optional[str]]


def build_components(
    config: HostConfig,
    host: HostRunner,
    *,
    transport: Optional[httpx.BaseTransport] = None,
    apt: Optional[AptManager] = None,
    services: Optional[ServiceManager] = None,
    fetcher: Optional[ArtifactFetcher] = None,
    renderer: Optional[TemplateRenderer] = None,
) -> List[ManagedComponent]:
    """Return enabled components. Build a fresh list for every run."""
    renderer = renderer or TemplateRenderer()
    apt = apt or AptManager(host, renderer, transport=transport)
    services = services or ServiceManager(host)
    fetcher = fetcher or ArtifactFetcher(
        max_attempts=config.artifacts.max_attempts,
        retry_delay=config.artifacts.retry_delay,
        timeout=config.artifacts.timeout,
        transport=transport,
    )

    components: List[ManagedComponent] = []
    if config.prerequisites.enabled:
        components.append(
            AptToolComponent(
                "prerequisites",
                COMPONENT_RANKS["prerequisites"],
                config.prerequisites.packages,
                apt,
                host,
                reversible=False,
                upgrade=config.prerequisites.upgrade_system,
            )
        )
    if config.ansible.enabled:
        components.append(
            AptToolComponent(
                "ansible",
                COMPONENT_RANKS["ansible"],
                ["ansible"],
                apt,
                host,
                probe=["ansible", "--version"],
                ppa=ANSIBLE_PPA,
                ppa_marker=ANSIBLE_PPA_MARKER,
            )
        )
    if config.terraform.enabled:
        components.append(
            AptToolComponent(
                "terraform",
                COMPONENT_RANKS["terraform"],
                ["terraform"],
                apt,
                host,
                probe=["terraform", "-version"],
                repository=HASHICORP_REPOSITORY,
            )
        )
    if config.java.enabled:
        components.append(
            AptToolComponent(
                "java",
                COMPONENT_RANKS["java"],
                [config.java.package],
                apt,
                host,
                probe=["java", "-version"],
            )
        )
    if config.jenkins.enabled:
        components.append(
            JenkinsComponent(
                config.jenkins,
                COMPONENT_RANKS["jenkins"],
                apt,
                services,
                host,
                fetcher,
                renderer,
            )
        )
    if config.awscli.enabled:
        components.append(
            AwsCliComponent(config.awscli, COMPONENT_RANKS["awscli"], apt, host, fetcher)
        )
    if config.stack.enabled and config.stack.directory is not None:
        components.append(
            SandboxStackComponent(
                config.stack.directory,
                COMPONENT_RANKS["sandbox-stack"],
                host,
                apply_timeout=config.stack.apply_timeout,
            )
        )
    return components


def managed_packages(config: HostConfig) -> List[str]:
    return ["ansible", "terraform", config.java.package, JENKINS_PACKAGE, "awscli"]


def build_finalizers(config: HostConfig, host: HostRunner, apt: Optional[AptManager] = None) -> List[Finalizer]:
    """Housekeeping run once after all components: rollback tidies apt state."""
    apt = apt or AptManager(host)

    def autoremove(direction: Direction) -> Optional[str]:
        if direction != Direction.rollback:
            return None
        result = apt.autoremove()
        return "apt-get autoremove done" if result.ok else f"apt-get autoremove failed: {result.describe()}"

    def purge_residual(direction: Direction) -> Optional[str]:
        if direction != Direction.rollback:
            return None
        purged = apt.purge_residual(managed_packages(config))
        return f"purged residual config for {', '.join(purged)}" if purged else None

    def drop_backups(direction: Direction) -> Optional[str]:
        if direction != Direction.rollback:
            return None
        backups = apt.backup_files()
        if not backups:
            return None
        return "; ".join(apt.delete_files(backups))

    def refresh_index(direction: Direction) -> Optional[str]:
        if direction != Direction.rollback:
            return None
        result = apt.update()
        return "apt cache updated" if result.exit_code == 0 else f"apt-get update failed: {result.describe()}"

    return [autoremove, purge_residual, drop_backups, refresh_index]
