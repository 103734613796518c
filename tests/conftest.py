"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import io
import os
import sys
import tempfile
import zipfile
from pathlib import Path
from typing import Callable, Dict, Generator, List, Union
from unittest.mock import patch

import httpx
import pytest

# Add project root and this directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

# Keep the app's module-level repository out of the real home directory.
os.environ.setdefault("PROVISIONER_ROOT", tempfile.mkdtemp(prefix="provisioner-test-"))

from fastapi.testclient import TestClient

from fakes import FakeHost
from provisioner.app import app
from provisioner.models import HostConfig
from provisioner.rendering import TemplateRenderer
from provisioner.runtime.apt import AptManager
from provisioner.runtime.artifacts import ArtifactFetcher
from provisioner.runtime.systemd import ServiceManager
from provisioner.storage import ConfigRepository

JENKINS_WAR_URL = "https://downloads.test/jenkins.war"
AWSCLI_URL = "https://downloads.test/awscliv2.zip"
KEY_TEXT = "-----BEGIN PGP PUBLIC KEY BLOCK-----\nfake\n-----END PGP PUBLIC KEY BLOCK-----\n"

Reply = Union[bytes, int, Callable[[httpx.Request], httpx.Response]]


def build_zip(members: Dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in members.items():
            archive.writestr(name, content)
    return buffer.getvalue()


class Downloads:
    """Routes for ``httpx.MockTransport``; each URL serves queued replies in order."""

    def __init__(self) -> None:
        self.routes: Dict[str, List[Reply]] = {}
        self.requests: List[str] = []

    def serve(self, url: str, *replies: Reply) -> None:
        self.routes.setdefault(url, []).extend(replies)

    def count(self, url: str) -> int:
        return self.requests.count(url)

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        queue = self.routes.get(url)
        if not queue:
            return httpx.Response(404)
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(reply):
            return reply(request)
        if isinstance(reply, int):
            return httpx.Response(reply)
        return httpx.Response(200, content=reply)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def war_bytes() -> bytes:
    return build_zip({"META-INF/MANIFEST.MF": "Main-Class: Main\n", "WEB-INF/web.xml": "<web-app/>"})


@pytest.fixture
def downloads() -> Downloads:
    routes = Downloads()
    routes.serve("https://pkg.jenkins.io/debian-stable/jenkins.io.key", KEY_TEXT.encode())
    routes.serve("https://apt.releases.hashicorp.com/gpg", KEY_TEXT.encode())
    return routes


@pytest.fixture
def apt_paths(temp_dir: Path) -> Dict[str, Path]:
    paths = {
        "sources_dir": temp_dir / "etc/apt/sources.list.d",
        "keyrings_dir": temp_dir / "usr/share/keyrings",
        "trusted_dir": temp_dir / "etc/apt/trusted.gpg.d",
        "sources_list": temp_dir / "etc/apt/sources.list",
    }
    for key in ("sources_dir", "keyrings_dir", "trusted_dir"):
        paths[key].mkdir(parents=True)
    return paths


@pytest.fixture
def fake_host(apt_paths: Dict[str, Path]) -> FakeHost:
    host = FakeHost(sources_dir=apt_paths["sources_dir"])
    host.acquire_privilege()
    return host


@pytest.fixture
def renderer() -> TemplateRenderer:
    return TemplateRenderer()


@pytest.fixture
def apt(fake_host: FakeHost, apt_paths: Dict[str, Path], downloads: Downloads, renderer: TemplateRenderer) -> AptManager:
    return AptManager(fake_host, renderer, transport=downloads.transport, **apt_paths)


@pytest.fixture
def services(fake_host: FakeHost, temp_dir: Path) -> ServiceManager:
    return ServiceManager(fake_host, pid1_comm=temp_dir / "no-proc-comm")


@pytest.fixture
def fetcher(downloads: Downloads) -> ArtifactFetcher:
    return ArtifactFetcher(max_attempts=3, retry_delay=0, timeout=5, transport=downloads.transport, sleep=lambda _: None)


@pytest.fixture
def host_config(temp_dir: Path) -> HostConfig:
    """A configuration whose host paths all live under the temp directory."""
    return HostConfig.model_validate(
        {
            "artifacts": {"max_attempts": 3, "retry_delay": 0, "timeout": 5},
            "jenkins": {
                "war_url": JENKINS_WAR_URL,
                "min_war_size": 16,
                "install_dir": str(temp_dir / "opt/jenkins"),
                "launcher_path": str(temp_dir / "home/start-jenkins.sh"),
            },
            "awscli": {"enabled": False, "download_url": AWSCLI_URL, "min_size": 16},
        }
    )


@pytest.fixture
def config_repo(temp_dir: Path) -> ConfigRepository:
    return ConfigRepository(temp_dir / "state")


@pytest.fixture
def api_client(config_repo: ConfigRepository, fake_host: FakeHost) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    # Patch the module-level objects used by app routes
    with patch("provisioner.app.repo", config_repo), patch("provisioner.app.host", fake_host):
        with TestClient(app) as client:
            yield client
