"""FastAPI entrypoint exposing status, plans and converge runs over HTTP."""
from __future__ import annotations

import asyncio
import json
import threading
from typing import List
from uuid import uuid4

from fastapi import FastAPI, HTTPException
from sse_starlette.sse import EventSourceResponse

from .cli import default_root
from .components.base import ManagedComponent
from .components.registry import build_components, build_finalizers
from .converge.engine import ConvergeEngine
from .converge.plan import build_plan, detect_state
from .errors import PreconditionUnmet
from .models import (
    ApplyResponse,
    ComponentStatus,
    Direction,
    HostConfig,
    RunRecord,
    StatusResponse,
)
from .runtime.host import HostRunner
from .storage import ConfigRepository

ROOT_DIR = default_root()

app = FastAPI(title="Devbox Provisioner", version="0.1.0")
repo = ConfigRepository(ROOT_DIR)
host = HostRunner()
# One converge at a time per process.
_apply_lock = threading.Lock()


def _components(config: HostConfig) -> List[ManagedComponent]:
    return build_components(config, host)


@app.get("/api/config", response_model=HostConfig)
def get_config() -> HostConfig:
    """Return the saved host configuration (defaults when none is saved)."""
    return repo.load_config()


@app.put("/api/config", response_model=HostConfig)
def update_config(config: HostConfig) -> HostConfig:
    """Persist an updated configuration to provisioner.yaml."""
    repo.save_config(config)
    return config


@app.get("/api/status", response_model=StatusResponse)
def get_status() -> StatusResponse:
    """Detect the current state of every enabled component."""
    config = repo.load_config()
    statuses = []
    for component in sorted(_components(config), key=lambda c: c.rank):
        state, reason = detect_state(component)
        statuses.append(
            ComponentStatus(
                name=component.name,
                rank=component.rank,
                state=state,
                detail=reason or component.describe(),
            )
        )
    return StatusResponse(components=statuses)


@app.get("/api/plan")
def get_plan(direction: Direction = Direction.install) -> dict:
    """Preview the action each component would take."""
    config = repo.load_config()
    return build_plan(_components(config), direction).to_dict()


@app.post("/api/apply", response_model=ApplyResponse)
def apply(direction: Direction = Direction.install, confirm: bool = False) -> ApplyResponse:
    """Run the converge engine. Rollback must be confirmed explicitly."""
    if direction == Direction.rollback and not confirm:
        raise HTTPException(status_code=400, detail="rollback requires confirm=true")
    if not _apply_lock.acquire(blocking=False):
        raise HTTPException(status_code=409, detail="a run is already in progress")
    try:
        config = repo.load_config()
        engine = ConvergeEngine(host=host, repo=repo, finalizers=build_finalizers(config, host))
        run_id = str(uuid4())
        report = engine.converge(_components(config), direction, run_id=run_id)
    except PreconditionUnmet as exc:
        raise HTTPException(status_code=412, detail=str(exc)) from exc
    finally:
        _apply_lock.release()
    return ApplyResponse(ok=report.ok, run_id=run_id, report=report)


@app.get("/api/runs/{run_id}", response_model=RunRecord)
def get_run(run_id: str) -> RunRecord:
    record = repo.get_run(run_id)
    if record is None:
        raise HTTPException(status_code=404, detail="run_not_found")
    return record


@app.get("/api/runs/{run_id}/events")
async def stream_run_events(run_id: str) -> EventSourceResponse:
    """Stream component outcomes for a given run identifier."""

    async def event_generator():
        sent = 0
        while True:
            record = repo.get_run(run_id)
            if record is None:
                yield {
                    "event": "error",
                    "data": json.dumps({"message": "run_not_found"}),
                }
                return

            while sent < len(record.events):
                event = record.events[sent]
                sent += 1
                yield {
                    "event": "component",
                    "data": event.model_dump_json(),
                }

            if record.ok is not None:
                yield {
                    "event": "status",
                    "data": json.dumps(
                        {"ok": record.ok, "summary": record.summary or ""}
                    ),
                }
                return

            await asyncio.sleep(0.5)

    return EventSourceResponse(event_generator())
