"""APT package database and repository registration helpers."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import httpx

from ..constants import APT_KEYRINGS_DIR, APT_SOURCES_DIR, APT_TRUSTED_DIR
from ..errors import ActionFailed
from ..rendering import SourceEntry, TemplateRenderer
from .host import CommandResult, HostRunner
from .retry import retry_request
from .signals import Signal

log = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


@dataclass(frozen=True)
class AptRepository:
    """A third-party apt repository signed by a downloaded key.

    ``suite`` of ``None`` means the host's distribution codename.
    """

    name: str
    key_url: str
    url: str
    suite: Optional[str] = None
    component: str = "main"


class AptManager:
    """Queries and mutates the system package database through apt/dpkg."""

    def __init__(
        self,
        host: HostRunner,
        renderer: Optional[TemplateRenderer] = None,
        *,
        sources_dir: Path = Path(APT_SOURCES_DIR),
        keyrings_dir: Path = Path(APT_KEYRINGS_DIR),
        trusted_dir: Path = Path(APT_TRUSTED_DIR),
        sources_list: Path = Path("/etc/apt/sources.list"),
        key_timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.host = host
        self.renderer = renderer or TemplateRenderer()
        self.sources_dir = sources_dir
        self.keyrings_dir = keyrings_dir
        self.trusted_dir = trusted_dir
        self.sources_list = sources_list
        self.key_timeout = key_timeout
        self.transport = transport

    # ------------------------------------------------------------------ queries

    def package_status(self, package: str) -> str:
        result = self.host.probe(["dpkg-query", "-W", "-f=${Status}", package])
        if result.exit_code != 0:
            return ""
        return result.stdout.strip()

    def is_installed(self, package: str) -> bool:
        return self.package_status(package).endswith("install ok installed")

    def has_residual_config(self, package: str) -> bool:
        return self.package_status(package).endswith("config-files")

    def codename(self) -> str:
        result = self.host.probe(["lsb_release", "-cs"])
        if result.ok and result.stdout.strip():
            return result.stdout.strip()
        os_release = Path("/etc/os-release")
        if os_release.exists():
            for line in os_release.read_text().splitlines():
                if line.startswith("VERSION_CODENAME="):
                    return line.split("=", 1)[1].strip().strip('"')
        raise ActionFailed("unable to determine distribution codename", result)

    def ppa_registered(self, marker: str) -> bool:
        candidates = [self.sources_list]
        if self.sources_dir.exists():
            candidates.extend(sorted(self.sources_dir.glob("*")))
        for path in candidates:
            if not path.is_file():
                continue
            try:
                if marker in path.read_text(errors="ignore"):
                    return True
            except OSError:
                continue
        return False

    def repository_files(self, name: str) -> List[Path]:
        """Return every source list and keyring left behind for ``name``."""
        found: List[Path] = []
        patterns = (
            (self.sources_dir, f"{name}*"),
            (self.keyrings_dir, f"{name}*.gpg"),
            (self.keyrings_dir, f"{name}*.asc"),
            (self.trusted_dir, f"{name}*.gpg"),
        )
        for directory, pattern in patterns:
            if directory.exists():
                found.extend(sorted(p for p in directory.glob(pattern) if p.is_file()))
        return found

    def repository_registered(self, name: str) -> bool:
        return bool(self.repository_files(name))

    def backup_files(self) -> List[Path]:
        """Source list backups (``*.bak*``) left next to the real lists."""
        if not self.sources_dir.exists():
            return []
        return sorted(p for p in self.sources_dir.glob("*.bak*") if p.is_file())

    @staticmethod
    def trust_error_for(result: CommandResult, source: str) -> bool:
        """True when ``result`` reports a signature problem naming ``source``.

        ``apt-get update`` prints one line per broken repository, so a warning
        about some other repository on the host is not attributed here.
        """
        if result.signal != Signal.trust_error:
            return False
        return source.rstrip("/") in f"{result.stdout}\n{result.stderr}"

    # ---------------------------------------------------------------- mutations

    def update(self) -> CommandResult:
        return self.host.run(["apt-get", "update"], privileged=True, env=APT_ENV)

    def upgrade(self) -> CommandResult:
        return self.host.run(["apt-get", "upgrade", "-y"], privileged=True, env=APT_ENV)

    def install(self, packages: Sequence[str]) -> CommandResult:
        return self.host.run(
            ["apt-get", "install", "-y", *packages], privileged=True, env=APT_ENV
        )

    def remove(self, packages: Sequence[str]) -> CommandResult:
        return self.host.run(
            ["apt-get", "remove", "-y", *packages], privileged=True, env=APT_ENV
        )

    def purge(self, packages: Sequence[str]) -> CommandResult:
        return self.host.run(
            ["apt-get", "purge", "-y", *packages], privileged=True, env=APT_ENV
        )

    def autoremove(self) -> CommandResult:
        return self.host.run(["apt-get", "autoremove", "-y"], privileged=True, env=APT_ENV)

    def purge_residual(self, packages: Iterable[str]) -> List[str]:
        purged: List[str] = []
        for package in packages:
            if self.has_residual_config(package) and self.purge([package]).ok:
                purged.append(package)
        return purged

    def add_ppa(self, ppa: str) -> CommandResult:
        return self.host.run(
            ["add-apt-repository", "--yes", "--update", ppa], privileged=True, env=APT_ENV
        )

    def remove_ppa(self, ppa: str, leftover_prefix: str) -> List[str]:
        """Deregister a PPA and delete any source files it left behind."""
        notes: List[str] = []
        if self.host.which("add-apt-repository"):
            result = self.host.run(
                ["add-apt-repository", "--remove", "-y", ppa], privileged=True, env=APT_ENV
            )
            notes.append(f"{ppa} removed" if result.ok else f"{ppa} removal failed")
        leftovers = self.repository_files(leftover_prefix)
        if leftovers:
            notes.extend(self.delete_files(leftovers))
        return notes

    def register_repository(self, repo: AptRepository) -> Path:
        """Install the signing key and source list for ``repo``."""
        keyring = self.keyrings_dir / f"{repo.name}.gpg"
        key_text = self._fetch_key(repo.key_url)
        dearmor = self.host.run(
            ["gpg", "--batch", "--yes", "--dearmor", "-o", str(keyring)],
            privileged=True,
            input_text=key_text,
        )
        if not dearmor.ok:
            raise ActionFailed(f"could not install signing key for {repo.name}", dearmor)

        suite = repo.suite if repo.suite is not None else self.codename()
        line = self.renderer.render_source(
            SourceEntry(url=repo.url, suite=suite, keyring=keyring, component=repo.component)
        )
        source_path = self.sources_dir / f"{repo.name}.list"
        self.write_file(source_path, line)
        log.info("Registered apt repository %s at %s", repo.name, source_path)
        return source_path

    def unregister_repository(self, name: str) -> List[str]:
        return self.delete_files(self.repository_files(name))

    def write_file(self, target: Path, content: str) -> None:
        result = self.host.run(["tee", str(target)], privileged=True, input_text=content)
        if not result.ok:
            raise ActionFailed(f"could not write {target}", result)

    def delete_files(self, paths: Sequence[Path]) -> List[str]:
        if not paths:
            return []
        result = self.host.run(["rm", "-f", *[str(p) for p in paths]], privileged=True)
        if not result.ok:
            return [f"failed to delete {', '.join(str(p) for p in paths)}"]
        return [f"deleted {p}" for p in paths]

    def _fetch_key(self, url: str) -> str:
        try:
            with httpx.Client(
                timeout=httpx.Timeout(self.key_timeout, connect=10.0),
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                response = retry_request(client.get, url)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ActionFailed(f"failed to fetch signing key {url}: {exc}") from exc
        return response.text
