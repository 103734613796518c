"""Helpers for reading and writing provisioner configuration and run history."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from .models import ComponentOutcome, Direction, HostConfig, RunRecord


class ConfigRepository:
    """File-backed persistence for host configuration and run state."""

    def __init__(self, root: Path, config_path: Path | None = None) -> None:
        self.root = root
        self.config_path = config_path or root / "provisioner.yaml"
        self.state_path = root / "state.json"
        self.root.mkdir(parents=True, exist_ok=True)

    def load_config(self) -> HostConfig:
        """Load the host configuration; a missing file means all defaults."""
        if not self.config_path.exists():
            return HostConfig()
        data = yaml.safe_load(self.config_path.read_text()) or {}
        return HostConfig.model_validate(data)

    def save_config(self, config: HostConfig) -> None:
        payload = config.model_dump(mode="json")
        with self.config_path.open("w") as handle:
            yaml.safe_dump(payload, handle, sort_keys=False)

    def load_state(self) -> dict[str, Any]:
        if not self.state_path.exists():
            return {}
        return json.loads(self.state_path.read_text())

    def save_state(self, state: dict[str, Any]) -> None:
        self.state_path.write_text(json.dumps(state, indent=2))

    # Run history helpers -------------------------------------------------

    def start_run(self, run_id: str, direction: Direction) -> None:
        state = self.load_state()
        runs = state.setdefault("runs", [])
        runs.append({"run_id": run_id, "direction": direction.value, "ok": None, "events": []})
        self.save_state(state)

    def append_run_event(self, run_id: str, event: ComponentOutcome) -> None:
        state = self.load_state()
        runs = state.setdefault("runs", [])
        for record in runs:
            if record["run_id"] == run_id:
                record.setdefault("events", []).append(event.model_dump(mode="json"))
                break
        else:
            runs.append(
                {"run_id": run_id, "ok": None, "events": [event.model_dump(mode="json")]}
            )
        self.save_state(state)

    def finalize_run(self, run_id: str, ok: bool, summary: str | None = None) -> None:
        state = self.load_state()
        runs = state.setdefault("runs", [])
        for record in runs:
            if record["run_id"] == run_id:
                record["ok"] = ok
                if summary:
                    record["summary"] = summary
                break
        else:
            runs.append({"run_id": run_id, "ok": ok, "events": [], "summary": summary})
        self.save_state(state)

    def get_run(self, run_id: str) -> RunRecord | None:
        state = self.load_state()
        for record in state.get("runs", []):
            if record.get("run_id") == run_id:
                events = [
                    ComponentOutcome.model_validate(event)
                    for event in record.get("events", [])
                ]
                return RunRecord(
                    run_id=run_id,
                    direction=record.get("direction"),
                    ok=record.get("ok"),
                    events=events,
                    summary=record.get("summary"),
                )
        return None

    def list_runs(self) -> list[str]:
        return [record["run_id"] for record in self.load_state().get("runs", [])]
