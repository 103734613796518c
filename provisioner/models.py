"""Pydantic models for host provisioning configuration and run reports."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, validator

from .constants import (
    AWSCLI_DOWNLOAD_URL,
    AWSCLI_MIN_SIZE,
    JENKINS_INSTALL_DIR,
    JENKINS_MIN_WAR_SIZE,
    JENKINS_WAR_URL,
    PREREQUISITE_PACKAGES,
)


class Direction(str, Enum):
    install = "install"
    rollback = "rollback"


class ComponentState(str, Enum):
    absent = "absent"
    present = "present"
    present_but_invalid = "present_but_invalid"


class OutcomeStatus(str, Enum):
    skipped = "skipped"
    installed = "installed"
    removed = "removed"
    failed = "failed"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ArtifactPolicy(BaseModel):
    max_attempts: int = Field(default=3, ge=1, le=10)
    retry_delay: float = Field(default=5.0, ge=0)
    timeout: float = Field(default=300.0, gt=0)


class ComponentToggle(BaseModel):
    enabled: bool = True


class PrerequisitesConfig(ComponentToggle):
    packages: List[str] = Field(default_factory=lambda: list(PREREQUISITE_PACKAGES))
    upgrade_system: bool = False


class JavaConfig(ComponentToggle):
    package: str = "openjdk-17-jdk"


class JenkinsConfig(ComponentToggle):
    prefer_service: bool = True
    war_url: str = JENKINS_WAR_URL
    min_war_size: int = Field(default=JENKINS_MIN_WAR_SIZE, ge=0)
    install_dir: Path = Path(JENKINS_INSTALL_DIR)
    launcher_path: Optional[Path] = None
    http_port: int = Field(default=8080, ge=1, le=65535)

    @validator("install_dir")
    def ensure_absolute(cls, value: Path) -> Path:
        if not value.is_absolute():
            raise ValueError("Paths must be absolute")
        return value

    def resolved_launcher(self) -> Path:
        if self.launcher_path is not None:
            return self.launcher_path.expanduser()
        return Path.home() / "start-jenkins.sh"


class AwsCliConfig(ComponentToggle):
    download_url: str = AWSCLI_DOWNLOAD_URL
    min_size: int = Field(default=AWSCLI_MIN_SIZE, ge=0)


class SandboxStackConfig(ComponentToggle):
    enabled: bool = False
    directory: Optional[Path] = None
    apply_timeout: float = Field(default=1800.0, gt=0)

    @validator("directory", always=True)
    def ensure_directory_when_enabled(cls, value: Optional[Path], values: dict) -> Optional[Path]:
        if values.get("enabled") and value is None:
            raise ValueError("directory is required when the sandbox stack is enabled")
        return value


class HostConfig(BaseModel):
    version: int = 1
    command_timeout: float = Field(default=600.0, gt=0)
    probe_timeout: float = Field(default=30.0, gt=0)
    artifacts: ArtifactPolicy = Field(default_factory=ArtifactPolicy)
    prerequisites: PrerequisitesConfig = Field(default_factory=PrerequisitesConfig)
    ansible: ComponentToggle = Field(default_factory=ComponentToggle)
    terraform: ComponentToggle = Field(default_factory=ComponentToggle)
    java: JavaConfig = Field(default_factory=JavaConfig)
    jenkins: JenkinsConfig = Field(default_factory=JenkinsConfig)
    awscli: AwsCliConfig = Field(default_factory=AwsCliConfig)
    stack: SandboxStackConfig = Field(default_factory=SandboxStackConfig)


# ---------------------------------------------------------------------------
# Run reporting
# ---------------------------------------------------------------------------


class ComponentOutcome(BaseModel):
    """Terminal outcome recorded for one managed component."""

    component: str
    rank: int = 0
    status: OutcomeStatus
    state_before: ComponentState = ComponentState.absent
    via_fallback: bool = False
    attempts: int = 0
    detail: Optional[str] = None
    diagnostics: Optional[str] = None

    @property
    def label(self) -> str:
        text = self.status.value.capitalize()
        if self.via_fallback:
            text += " (via fallback path)"
        return text


class RunReport(BaseModel):
    run_id: str
    direction: Direction
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    entries: List[ComponentOutcome] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)

    @property
    def failed(self) -> List[ComponentOutcome]:
        return [entry for entry in self.entries if entry.status == OutcomeStatus.failed]

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def outcome_for(self, name: str) -> Optional[ComponentOutcome]:
        for entry in self.entries:
            if entry.component == name:
                return entry
        return None

    def summary_lines(self) -> List[str]:
        """Render a fixed-width table of every component outcome."""
        if not self.entries:
            return ["No components managed"]
        width = max(len(entry.component) for entry in self.entries)
        lines = [f"{'component'.ljust(width)}  outcome"]
        lines.append("-" * (width + 2 + len("outcome")))
        for entry in self.entries:
            line = f"{entry.component.ljust(width)}  {entry.label}"
            if entry.detail:
                line += f"  [{entry.detail}]"
            lines.append(line)
        for note in self.notes:
            lines.append(f"note: {note}")
        verdict = "succeeded" if self.ok else f"{len(self.failed)} component(s) failed"
        lines.append(f"{self.direction.value} {verdict}")
        return lines


class RunRecord(BaseModel):
    run_id: str
    direction: Optional[Direction] = None
    ok: Optional[bool] = None
    events: List[ComponentOutcome] = Field(default_factory=list)
    summary: Optional[str] = None


class ComponentStatus(BaseModel):
    """Detected state of a managed component, as shown by ``status``."""

    name: str
    rank: int
    state: ComponentState
    detail: Optional[str] = None


class StatusResponse(BaseModel):
    components: List[ComponentStatus] = Field(default_factory=list)


class ApplyResponse(BaseModel):
    ok: bool
    run_id: str
    report: RunReport
