"""Tests for the command line entrypoint."""
from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from fakes import FakeComponent, FakeHost
from provisioner.cli import EXIT_FAILED, EXIT_OK, EXIT_PRECONDITION, confirm, main
from provisioner.models import ComponentState
from provisioner.storage import ConfigRepository


@pytest.fixture
def components():
    return [
        FakeComponent("ansible", 10),
        FakeComponent("terraform", 20),
        FakeComponent("java", 30, ComponentState.present),
    ]


@pytest.fixture
def cli_env(components):
    """Patch host access so the CLI runs against in-memory components."""
    host = FakeHost()
    with patch("provisioner.cli.build_components", return_value=components), patch(
        "provisioner.cli.HostRunner", return_value=host
    ), patch("provisioner.cli.build_finalizers", return_value=[]):
        yield host


class TestConfirm:
    def test_yes_answers(self):
        assert confirm("? ", reader=lambda _: "y")
        assert confirm("? ", reader=lambda _: " YES ")

    def test_anything_else_declines(self):
        assert not confirm("? ", reader=lambda _: "")
        assert not confirm("? ", reader=lambda _: "nope")

    def test_end_of_input_declines(self):
        def closed(_prompt):
            raise EOFError

        assert not confirm("? ", reader=closed)


class TestMain:
    def test_install_succeeds(self, cli_env, components, temp_dir: Path, capsys):
        code = main(["--root", str(temp_dir), "install"])

        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert "install succeeded" in out
        assert "run id:" in out
        assert [c.installs for c in components] == [1, 1, 0]

    def test_failure_exits_non_zero_and_prints_diagnostics(self, cli_env, components, temp_dir: Path, capsys):
        components[1].fail_install = True

        code = main(["--root", str(temp_dir), "install"])

        captured = capsys.readouterr()
        assert code == EXIT_FAILED
        assert "1 component(s) failed" in captured.out
        assert "Unable to fetch archives" in captured.err
        assert components[0].installs == 1

    def test_missing_privilege_exits_with_precondition_code(self, cli_env, components, temp_dir: Path, capsys):
        cli_env.can_escalate = False

        code = main(["--root", str(temp_dir), "install"])

        assert code == EXIT_PRECONDITION
        assert "requires sudo" in capsys.readouterr().err
        assert all(c.installs == 0 for c in components)

    def test_rollback_declined(self, cli_env, components, temp_dir: Path, capsys):
        with patch("provisioner.cli.confirm", return_value=False):
            code = main(["--root", str(temp_dir), "rollback"])

        assert code == EXIT_OK
        assert "Aborted by user." in capsys.readouterr().out
        assert all(c.removes == 0 for c in components)
        assert ConfigRepository(temp_dir).list_runs() == []

    def test_rollback_with_yes_skips_prompt(self, cli_env, components, temp_dir: Path):
        with patch("provisioner.cli.confirm") as mock_confirm:
            code = main(["--root", str(temp_dir), "rollback", "--yes"])

        mock_confirm.assert_not_called()
        assert code == EXIT_OK
        assert components[2].removes == 1

    def test_plan_does_not_act(self, cli_env, components, temp_dir: Path, capsys):
        code = main(["--root", str(temp_dir), "plan", "--direction", "rollback"])

        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert "remove" in out
        assert all(c.removes == 0 for c in components)

    def test_status(self, cli_env, temp_dir: Path, capsys):
        code = main(["--root", str(temp_dir), "status"])

        lines = capsys.readouterr().out.splitlines()
        assert code == EXIT_OK
        assert lines[0].split()[:2] == ["ansible", "absent"]
        assert lines[2].split()[:2] == ["java", "present"]

    def test_history_shows_latest_run(self, cli_env, temp_dir: Path, capsys):
        main(["--root", str(temp_dir), "install"])
        capsys.readouterr()

        code = main(["--root", str(temp_dir), "history"])

        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert "(install): ok" in out
        assert "ansible: Installed" in out

    def test_history_unknown_run(self, cli_env, temp_dir: Path, capsys):
        code = main(["--root", str(temp_dir), "history", "nope"])
        assert code == EXIT_FAILED
        assert "not found" in capsys.readouterr().err
