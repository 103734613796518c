"""Download and integrity checks for artifacts fetched outside apt.

Large binaries (the Jenkins WAR, the AWS CLI bundle) are fetched over HTTPS,
then validated by file signature and a minimum size. A failed validation
discards the file and retries, up to a bounded number of attempts.
"""
from __future__ import annotations

import logging
import time
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import httpx

from ..constants import ZIP_SIGNATURE
from ..errors import ValidationFailed

log = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class ArtifactSpec:
    url: str
    min_size: int = 0
    signature: bytes = ZIP_SIGNATURE
    # Archive member prefix that must be present, e.g. ``META-INF/`` for Java archives.
    required_member: Optional[str] = None


@dataclass
class FetchResult:
    path: Path
    attempts: int
    size: int


def validate_artifact(path: Path, spec: ArtifactSpec) -> None:
    """Raise ``ValidationFailed`` unless ``path`` looks like the expected artifact."""
    if not path.is_file():
        raise ValidationFailed(f"{path} does not exist")
    size = path.stat().st_size
    if size < spec.min_size:
        raise ValidationFailed(
            f"downloaded file too small ({size} bytes, expected at least {spec.min_size})"
        )
    with path.open("rb") as handle:
        header = handle.read(len(spec.signature))
    if header != spec.signature:
        raise ValidationFailed(f"{path.name} has an unexpected file signature")
    if spec.required_member:
        try:
            with zipfile.ZipFile(path) as archive:
                names = archive.namelist()
        except zipfile.BadZipFile as exc:
            raise ValidationFailed(f"{path.name} is not a readable archive: {exc}") from exc
        if not any(name.startswith(spec.required_member) for name in names):
            raise ValidationFailed(f"{path.name} is missing {spec.required_member}")


def is_valid_artifact(path: Path, spec: ArtifactSpec) -> bool:
    try:
        validate_artifact(path, spec)
    except ValidationFailed:
        return False
    return True


class ArtifactFetcher:
    """Fetches an artifact with bounded, validated retries."""

    def __init__(
        self,
        max_attempts: int = 3,
        retry_delay: float = 5.0,
        timeout: float = 300.0,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.transport = transport
        self.sleep = sleep

    def fetch(self, spec: ArtifactSpec, destination: Path) -> FetchResult:
        last_error = "no attempt made"
        for attempt in range(1, self.max_attempts + 1):
            log.info("Download attempt %d of %d: %s", attempt, self.max_attempts, spec.url)
            destination.unlink(missing_ok=True)
            try:
                self._download(spec.url, destination)
                validate_artifact(destination, spec)
            except httpx.HTTPError as exc:
                last_error = f"download failed: {exc}"
            except ValidationFailed as exc:
                last_error = str(exc)
            else:
                size = destination.stat().st_size
                log.info("Downloaded and verified %s (%d bytes)", destination.name, size)
                return FetchResult(path=destination, attempts=attempt, size=size)

            log.warning("Attempt %d for %s failed: %s", attempt, spec.url, last_error)
            if attempt < self.max_attempts:
                self.sleep(self.retry_delay)

        destination.unlink(missing_ok=True)
        raise ValidationFailed(
            f"failed to fetch {spec.url} after {self.max_attempts} attempts: {last_error}",
            attempts=self.max_attempts,
        )

    def _download(self, url: str, destination: Path) -> None:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=15.0),
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            with client.stream("GET", url) as response:
                response.raise_for_status()
                with destination.open("wb") as handle:
                    for chunk in response.iter_bytes(CHUNK_SIZE):
                        handle.write(chunk)
