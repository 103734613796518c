"""Command line entrypoint: install, roll back, or inspect the developer toolchain."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .components.registry import build_components, build_finalizers
from .converge.engine import ConvergeEngine
from .converge.plan import build_plan, detect_state
from .errors import PreconditionUnmet
from .models import Direction, HostConfig
from .runtime.host import HostRunner
from .storage import ConfigRepository

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PRECONDITION = 2

ROLLBACK_WARNING = (
    "This will remove Ansible, Terraform, Jenkins, OpenJDK, the AWS CLI and the apt "
    "repositories and keyrings created by the installer. Packages you had before "
    "installing may be removed too."
)


def default_root() -> Path:
    return Path(os.getenv("PROVISIONER_ROOT", Path.home() / ".provisioner")).expanduser()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="provisioner",
        description="Install or roll back the developer toolchain (Ansible, Terraform, Jenkins, AWS CLI).",
    )
    parser.add_argument("--root", type=Path, default=None, help="state directory (default: $PROVISIONER_ROOT or ~/.provisioner)")
    parser.add_argument("--config", type=Path, default=None, help="configuration file (default: <root>/provisioner.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="log command output")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("install", help="install every missing component")
    rollback = sub.add_parser("rollback", help="remove installed components")
    rollback.add_argument("-y", "--yes", action="store_true", help="do not ask for confirmation")
    plan = sub.add_parser("plan", help="show what install or rollback would do")
    plan.add_argument("--direction", choices=[d.value for d in Direction], default=Direction.install.value)
    sub.add_parser("status", help="show the detected state of every component")
    history = sub.add_parser("history", help="show a recorded run")
    history.add_argument("run_id", nargs="?", help="run identifier (default: latest)")
    return parser


def confirm(prompt: str, reader: Callable[[str], str] = input) -> bool:
    try:
        answer = reader(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def _print_lines(lines: Sequence[str]) -> None:
    for line in lines:
        print(line)


def run_converge(
    direction: Direction,
    repo: ConfigRepository,
    config: HostConfig,
    host: HostRunner,
) -> int:
    components = build_components(config, host)
    engine = ConvergeEngine(host=host, repo=repo, finalizers=build_finalizers(config, host))
    try:
        report = engine.converge(components, direction)
    except PreconditionUnmet as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return EXIT_PRECONDITION

    print()
    _print_lines(report.summary_lines())
    for entry in report.failed:
        if entry.diagnostics:
            print(f"\n--- {entry.component} diagnostics ---", file=sys.stderr)
            print(entry.diagnostics, file=sys.stderr)
    print(f"\nrun id: {report.run_id}")
    return report.exit_code


def cmd_plan(direction: Direction, config: HostConfig, host: HostRunner) -> int:
    plan = build_plan(build_components(config, host), direction)
    _print_lines(plan.summary_lines())
    return EXIT_OK


def cmd_status(config: HostConfig, host: HostRunner) -> int:
    components = build_components(config, host)
    width = max((len(c.name) for c in components), default=0)
    for component in sorted(components, key=lambda c: c.rank):
        state, _ = detect_state(component)
        print(f"{component.name.ljust(width)}  {state.value:<19}  {component.describe()}")
    return EXIT_OK


def cmd_history(repo: ConfigRepository, run_id: Optional[str]) -> int:
    if run_id is None:
        runs = repo.list_runs()
        if not runs:
            print("no runs recorded")
            return EXIT_OK
        run_id = runs[-1]
    record = repo.get_run(run_id)
    if record is None:
        print(f"run {run_id} not found", file=sys.stderr)
        return EXIT_FAILED
    direction = record.direction.value if record.direction else "unknown"
    verdict = {True: "ok", False: "failed", None: "in progress"}[record.ok]
    print(f"run {record.run_id} ({direction}): {verdict}")
    for event in record.events:
        print(f"  {event.component}: {event.label}" + (f" [{event.detail}]" if event.detail else ""))
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    repo = ConfigRepository(args.root or default_root(), config_path=args.config)
    config = repo.load_config()
    host = HostRunner(timeout=config.command_timeout, probe_timeout=config.probe_timeout)

    if args.command == "install":
        return run_converge(Direction.install, repo, config, host)
    if args.command == "rollback":
        if not args.yes:
            print(ROLLBACK_WARNING)
            if not confirm("Proceed with rollback? (y/N): "):
                print("Aborted by user.")
                return EXIT_OK
        return run_converge(Direction.rollback, repo, config, host)
    if args.command == "plan":
        return cmd_plan(Direction(args.direction), config, host)
    if args.command == "status":
        return cmd_status(config, host)
    return cmd_history(repo, args.run_id)


if __name__ == "__main__":
    sys.exit(main())
