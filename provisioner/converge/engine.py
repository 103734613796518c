"""Converge engine applying install or rollback across managed components."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence
from uuid import uuid4

from ..components.base import ActionResult, ManagedComponent
from ..components.registry import Finalizer
from ..errors import ActionFailed, PreconditionUnmet, ValidationFailed
from ..models import ComponentOutcome, Direction, OutcomeStatus, RunReport
from ..storage import ConfigRepository
from .plan import PlannedAction, order_components, plan_component

log = logging.getLogger(__name__)


class PrivilegeContext(Protocol):
    def acquire_privilege(self) -> None:
        ...


@dataclass
class ConvergeEngine:
    host: PrivilegeContext
    repo: Optional[ConfigRepository] = None
    finalizers: Sequence[Finalizer] = field(default_factory=tuple)

    def converge(
        self,
        components: Sequence[ManagedComponent],
        direction: Direction,
        run_id: Optional[str] = None,
    ) -> RunReport:
        run_id = run_id or str(uuid4())
        ordered = order_components(components, direction)

        # Fatal for the whole run: nothing below could succeed without it.
        self.host.acquire_privilege()

        report = RunReport(run_id=run_id, direction=direction)
        if self.repo is not None:
            self.repo.start_run(run_id, direction)

        for component in ordered:
            outcome = self._converge_component(component, direction)
            report.entries.append(outcome)
            if self.repo is not None:
                self.repo.append_run_event(run_id, outcome)
            log.info("%s: %s%s", component.name, outcome.label, f" ({outcome.detail})" if outcome.detail else "")

        for finalizer in self.finalizers:
            try:
                note = finalizer(direction)
            except PreconditionUnmet:
                raise
            except Exception as exc:
                note = f"housekeeping step failed: {exc}"
            if note:
                report.notes.append(note)

        if self.repo is not None:
            summary = "; ".join(f"{entry.component}={entry.label}" for entry in report.entries)
            self.repo.finalize_run(run_id, ok=report.ok, summary=summary or None)
        return report

    # ------------------------------------------------------------------ helpers

    def _converge_component(self, component: ManagedComponent, direction: Direction) -> ComponentOutcome:
        step = plan_component(component, direction)
        if step.action == PlannedAction.skip:
            return ComponentOutcome(
                component=component.name,
                rank=component.rank,
                status=OutcomeStatus.skipped,
                state_before=step.state,
                detail=step.reason or None,
            )

        try:
            if step.action == PlannedAction.reinstall:
                cleared = component.remove()
                if not cleared.success:
                    return self._failed(step, f"could not clear invalid install: {cleared.detail}", cleared.diagnostics)
                result = component.install()
                status = OutcomeStatus.installed
            elif step.action == PlannedAction.install:
                result = component.install()
                status = OutcomeStatus.installed
            else:
                result = component.remove()
                status = OutcomeStatus.removed
        except PreconditionUnmet:
            raise
        except ValidationFailed as exc:
            return self._failed(step, str(exc), exc.diagnostics, attempts=exc.attempts)
        except ActionFailed as exc:
            return self._failed(step, str(exc), exc.diagnostics)
        except Exception as exc:
            log.exception("Unexpected error converging %s", component.name)
            return self._failed(step, f"{exc.__class__.__name__}: {exc}")

        if not result.success:
            return self._failed(step, result.detail, result.diagnostics, attempts=result.attempts)
        if not result.changed:
            status = OutcomeStatus.skipped
        return self._outcome(step, status, result)

    @staticmethod
    def _outcome(step, status: OutcomeStatus, result: ActionResult) -> ComponentOutcome:
        return ComponentOutcome(
            component=step.name,
            rank=step.rank,
            status=status,
            state_before=step.state,
            via_fallback=result.via_fallback,
            attempts=result.attempts,
            detail=result.detail or None,
        )

    @staticmethod
    def _failed(step, reason: str, diagnostics: str = "", attempts: int = 0) -> ComponentOutcome:
        return ComponentOutcome(
            component=step.name,
            rank=step.rank,
            status=OutcomeStatus.failed,
            state_before=step.state,
            attempts=attempts,
            detail=reason or "failed",
            diagnostics=diagnostics or None,
        )


def converge(
    components: Sequence[ManagedComponent],
    direction: Direction,
    host: PrivilegeContext,
    *,
    repo: Optional[ConfigRepository] = None,
    finalizers: Sequence[Finalizer] = (),
) -> RunReport:
    """Converge ``components`` towards ``direction`` and report every outcome."""
    return ConvergeEngine(host=host, repo=repo, finalizers=finalizers).converge(components, direction)
