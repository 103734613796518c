"""Detection and decision step of the converge engine.

Detects the current state of each managed component and maps it, together
with the requested direction, to the action the engine should take. The plan
is a read-only preview: the engine re-detects each component right before
acting on it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Sequence, Tuple

from ..components.base import ManagedComponent
from ..errors import DetectionInconclusive
from ..models import ComponentState, Direction

log = logging.getLogger(__name__)


class PlannedAction(str, Enum):
    skip = "skip"
    install = "install"
    reinstall = "reinstall"  # remove, then install
    remove = "remove"


@dataclass
class ComponentPlan:
    name: str
    rank: int
    state: ComponentState
    action: PlannedAction
    reason: str = ""


@dataclass
class ConvergePlan:
    direction: Direction
    steps: List[ComponentPlan] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return any(step.action != PlannedAction.skip for step in self.steps)

    def summary_lines(self) -> List[str]:
        if not self.steps:
            return ["No components managed"]
        width = max(len(step.name) for step in self.steps)
        lines = [
            f"{step.name.ljust(width)}  {step.state.value:<19}  {step.action.value}"
            + (f"  ({step.reason})" if step.reason else "")
            for step in self.steps
        ]
        if not self.has_changes:
            lines.append("Nothing to do")
        return lines

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "has_changes": self.has_changes,
            "steps": [
                {
                    "name": step.name,
                    "rank": step.rank,
                    "state": step.state.value,
                    "action": step.action.value,
                    "reason": step.reason,
                }
                for step in self.steps
            ],
        }


def order_components(
    components: Sequence[ManagedComponent], direction: Direction
) -> List[ManagedComponent]:
    """Sort by rank, dependency-first for install and reversed for rollback."""
    seen = set()
    for component in components:
        if component.name in seen:
            raise ValueError(f"duplicate component name: {component.name}")
        seen.add(component.name)
    ordered = sorted(components, key=lambda component: component.rank)
    if direction == Direction.rollback:
        ordered.reverse()
    return ordered


def detect_state(component: ManagedComponent) -> Tuple[ComponentState, str]:
    """Run the detection predicate; an inconclusive detection counts as absent."""
    try:
        return component.detect(), ""
    except DetectionInconclusive as exc:
        reason = f"detection inconclusive: {exc}"
    except Exception as exc:
        reason = f"detection inconclusive: {exc.__class__.__name__}: {exc}"
    log.warning("%s: %s; treating as absent", component.name, reason)
    return ComponentState.absent, reason


def decide(state: ComponentState, direction: Direction, reversible: bool = True) -> PlannedAction:
    if direction == Direction.install:
        if state == ComponentState.present:
            return PlannedAction.skip
        if state == ComponentState.present_but_invalid:
            return PlannedAction.reinstall
        return PlannedAction.install
    if state == ComponentState.absent or not reversible:
        return PlannedAction.skip
    return PlannedAction.remove


def plan_component(component: ManagedComponent, direction: Direction) -> ComponentPlan:
    state, reason = detect_state(component)
    reversible = getattr(component, "reversible", True)
    action = decide(state, direction, reversible)
    if not reason:
        if action == PlannedAction.skip and direction == Direction.install:
            reason = "already satisfied"
        elif action == PlannedAction.skip and state != ComponentState.absent:
            reason = "retained on rollback"
        elif action == PlannedAction.skip:
            reason = "not installed"
    return ComponentPlan(
        name=component.name,
        rank=component.rank,
        state=state,
        action=action,
        reason=reason,
    )


def build_plan(components: Sequence[ManagedComponent], direction: Direction) -> ConvergePlan:
    return ConvergePlan(
        direction=direction,
        steps=[plan_component(c, direction) for c in order_components(components, direction)],
    )
