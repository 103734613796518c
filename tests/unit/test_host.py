"""Tests for the subprocess-backed host runner."""
from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from provisioner.errors import PreconditionUnmet
from provisioner.runtime.host import CommandResult, HostRunner
from provisioner.runtime.signals import EXIT_NOT_FOUND, EXIT_TIMEOUT, Signal


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestCommandResult:
    def test_ok_includes_already_present(self):
        assert CommandResult(["apt-get"], 0, Signal.already_present).ok
        assert not CommandResult(["apt-get"], 100, Signal.failed).ok

    def test_first_line_skips_blank_output(self):
        result = CommandResult(["java", "-version"], 0, Signal.ok, "", "\nopenjdk version \"17.0.9\"\nmore\n")
        assert result.first_line == 'openjdk version "17.0.9"'

    def test_tail_keeps_last_lines(self):
        stdout = "\n".join(f"line {n}" for n in range(30))
        result = CommandResult(["apt-get"], 1, Signal.failed, stdout, "E: boom")
        tail = result.tail(3).splitlines()
        assert tail == ["line 28", "line 29", "E: boom"]

    def test_describe_quotes_arguments(self):
        result = CommandResult(["sh", "-c", "echo hi"], 2, Signal.failed)
        assert result.describe() == "sh -c 'echo hi' exited 2 (failed)"


class TestPrivilege:
    def test_root_needs_no_prefix(self):
        runner = HostRunner()
        with patch("provisioner.runtime.host.os.geteuid", return_value=0):
            runner.acquire_privilege()

        with patch("provisioner.runtime.host.subprocess.run", return_value=completed()) as mock_run:
            runner.run(["apt-get", "update"], privileged=True)

        assert mock_run.call_args[0][0] == ["apt-get", "update"]

    def test_sudo_prefix_for_regular_user(self):
        runner = HostRunner()
        with patch("provisioner.runtime.host.os.geteuid", return_value=1000), patch(
            "provisioner.runtime.host.shutil.which", return_value="/usr/bin/sudo"
        ), patch("provisioner.runtime.host.subprocess.run", return_value=completed()) as mock_run:
            runner.acquire_privilege()
            runner.run(["apt-get", "update"], privileged=True)

        assert mock_run.call_args_list[0][0][0] == ["sudo", "-v"]
        assert mock_run.call_args_list[1][0][0] == ["sudo", "apt-get", "update"]

    def test_missing_sudo_is_a_precondition(self):
        runner = HostRunner()
        with patch("provisioner.runtime.host.os.geteuid", return_value=1000), patch(
            "provisioner.runtime.host.shutil.which", return_value=None
        ):
            with pytest.raises(PreconditionUnmet, match="requires sudo"):
                runner.acquire_privilege()

    def test_rejected_sudo_is_a_precondition(self):
        runner = HostRunner()
        with patch("provisioner.runtime.host.os.geteuid", return_value=1000), patch(
            "provisioner.runtime.host.shutil.which", return_value="/usr/bin/sudo"
        ), patch("provisioner.runtime.host.subprocess.run", return_value=completed(1)):
            with pytest.raises(PreconditionUnmet, match="could not be validated"):
                runner.acquire_privilege()

    def test_privileged_run_before_acquire_is_refused(self):
        runner = HostRunner()
        with patch("provisioner.runtime.host.subprocess.run") as mock_run:
            with pytest.raises(PreconditionUnmet):
                runner.run(["apt-get", "install", "-y", "jq"], privileged=True)
        mock_run.assert_not_called()


class TestExecute:
    def test_output_is_classified(self):
        runner = HostRunner()
        process = completed(100, stderr="W: GPG error: NO_PUBKEY 5BA31D57EF5975CA")
        with patch("provisioner.runtime.host.subprocess.run", return_value=process):
            result = runner.run(["apt-get", "update"])

        assert result.exit_code == 100
        assert result.signal == Signal.trust_error

    def test_missing_executable(self):
        runner = HostRunner()
        with patch("provisioner.runtime.host.subprocess.run", side_effect=FileNotFoundError("no such file: aws")):
            result = runner.probe(["aws", "--version"])

        assert result.exit_code == EXIT_NOT_FOUND
        assert result.signal == Signal.not_found

    def test_timeout(self):
        runner = HostRunner(probe_timeout=2)
        with patch(
            "provisioner.runtime.host.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd=["systemctl"], timeout=2),
        ):
            result = runner.probe(["systemctl", "--version"])

        assert result.exit_code == EXIT_TIMEOUT
        assert result.signal == Signal.timeout
        assert "timed out after 2s" in result.stderr

    def test_probe_uses_probe_timeout_and_cwd(self, temp_dir):
        runner = HostRunner(timeout=600, probe_timeout=15)
        mock_run = MagicMock(return_value=completed(stdout="aws_instance.sandbox\n"))
        with patch("provisioner.runtime.host.subprocess.run", mock_run):
            runner.probe(["terraform", "state", "list"], cwd=temp_dir)

        kwargs = mock_run.call_args.kwargs
        assert kwargs["timeout"] == 15
        assert kwargs["cwd"] == str(temp_dir)

    def test_input_and_env_are_passed_through(self):
        runner = HostRunner()
        with patch("provisioner.runtime.host.subprocess.run", return_value=completed()) as mock_run:
            runner.run(["tee", "/tmp/out"], input_text="hello", env={"DEBIAN_FRONTEND": "noninteractive"})

        kwargs = mock_run.call_args.kwargs
        assert kwargs["input"] == "hello"
        assert kwargs["env"]["DEBIAN_FRONTEND"] == "noninteractive"
