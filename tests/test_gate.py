"""Tests for the pre-check gate."""

import shutil
import sys

import pytest

from conftest import FakeVersionControl, write_tree
from preflight.exceptions import GateError
from preflight.gate import DeploymentGate, GateResult
from preflight.models import ReportSummary, ValidationReport, Verdict
from preflight.validator import DeploymentValidator


def make_gate(root, strict=False, **vcs_kwargs):
    validator = DeploymentValidator(root, vcs=FakeVersionControl(root, **vcs_kwargs))
    return DeploymentGate(validator, strict=strict)


def touch_command(path):
    return [sys.executable, "-c", f"open({str(path)!r}, 'w').close()"]


class TestDeploymentGate:

    def test_runs_command_on_ready_tree(self, ready_tree, tmp_path):
        marker = tmp_path / "image.iso"

        result = make_gate(ready_tree).run(touch_command(marker))

        assert result.command_ran
        assert result.command_exit_code == 0
        assert result.exit_code == 0
        assert result.report.verdict == Verdict.READY
        assert marker.exists()

    def test_blocked_tree_does_not_run_command(self, ready_tree, tmp_path):
        write_tree(ready_tree, {"home/alice/.profile": "x\n"})
        marker = tmp_path / "image.iso"

        result = make_gate(ready_tree).run(touch_command(marker))

        assert not result.command_ran
        assert result.exit_code == 2
        assert not marker.exists()

    def test_command_exit_code_is_propagated(self, ready_tree):
        result = make_gate(ready_tree).run([sys.executable, "-c", "raise SystemExit(3)"])

        assert result.exit_code == 3

    def test_command_runs_in_repository(self, ready_tree, tmp_path):
        make_gate(ready_tree).run(touch_command("relative-marker"))

        assert (ready_tree / "relative-marker").exists()

    def test_skip_validation(self, ready_tree, tmp_path):
        write_tree(ready_tree, {"home/alice/.profile": "x\n"})
        marker = tmp_path / "image.iso"

        result = make_gate(ready_tree).run(touch_command(marker), skip_validation=True)

        assert result.report is None
        assert result.command_ran
        assert marker.exists()

    def test_strict_refuses_caution(self, ready_tree, tmp_path):
        shutil.rmtree(ready_tree / "overlays")
        shutil.rmtree(ready_tree / "hardware")
        (ready_tree / "flake.lock").unlink()
        write_tree(ready_tree, {"modules/system/user.nix": '{ path = "/home/alice"; }\n'})
        marker = tmp_path / "image.iso"

        relaxed = make_gate(ready_tree, dirty=True).run(touch_command(marker))
        assert relaxed.report.verdict == Verdict.READY_WITH_CAUTION
        assert relaxed.command_ran

        marker.unlink()
        strict = make_gate(ready_tree, strict=True, dirty=True).run(touch_command(marker))
        assert not strict.command_ran
        assert strict.exit_code == 1
        assert not marker.exists()

    def test_empty_command(self, ready_tree):
        with pytest.raises(GateError):
            make_gate(ready_tree).run([])

    def test_missing_command(self, ready_tree):
        with pytest.raises(GateError):
            make_gate(ready_tree).run(["definitely-not-an-installed-image-builder"])


def test_gate_result_exit_codes():
    report = ValidationReport(repo_root="/srv/config", summary=ReportSummary(errors=1), verdict=Verdict.BLOCKED)

    assert GateResult(report=report, command_ran=False).exit_code == 1
    assert GateResult(report=None, command_ran=True, command_exit_code=0).exit_code == 0
