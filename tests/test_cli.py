"""Tests for CLI dispatch, argument parsing and the upgrade command."""

import json
import os
import signal
import threading
from unittest.mock import patch

import pytest

from conftest import FakeStep, write_pyproject
from upgrader.cancellation import CancellationToken, OperationCancelled
from upgrader.cli import main
from upgrader.cli._helpers import EXIT_CANCELLED, EXIT_OK, EXIT_STARTUP_ERROR, cancel_on_sigterm
from upgrader.cli._parser import build_parser
from upgrader.registry import StepRegistry


@pytest.fixture(autouse=True)
def _clean_env():
    with patch.dict(os.environ, {}, clear=True):
        yield


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "repo"
    write_pyproject(root / "core", dependencies=["requests>=2", "nose"], requires=["setuptools>=68", "wheel"], name="core")
    write_pyproject(root / "app", dependencies=["core @ file:../core", "sklearn"], name="app")
    return root


class TestParserStructure:
    def test_upgrade_flags(self):
        args = build_parser().parse_args(["upgrade", "--backup-path", "/bk", "--no-backup", "--diag", "proj"])
        assert args.command == "upgrade"
        assert args.project_path == "proj"
        assert args.backup_path == "/bk"
        assert args.no_backup is True
        assert args.diag is True

    def test_upgrade_requires_path(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["upgrade"])

    def test_log_format_choices(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["upgrade", "--log-format", "xml", "proj"])

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "upgrade" in capsys.readouterr().out


@pytest.mark.integration
class TestUpgradeCommand:
    def _run(self, *argv):
        return main(["upgrade", "--offline", *argv])

    def test_non_interactive_upgrade(self, workspace, tmp_path, capsys):
        code = self._run("--non-interactive", "--backup-path", str(tmp_path / "bk"), str(workspace))
        assert code == EXIT_OK
        assert "Upgrade complete" in capsys.readouterr().out

        core = (workspace / "core" / "pyproject.toml").read_text()
        assert '"nose"' not in core
        assert "pytest" in core
        assert '"wheel"' not in core
        assert "scikit-learn" in (workspace / "app" / "pyproject.toml").read_text()
        assert '"nose"' in (tmp_path / "bk" / "core" / "pyproject.toml").read_text()

        state = workspace / ".upgrader"
        assert not (state / "progress.json").exists()
        records = [json.loads(line) for line in (state / "report.jsonl").read_text().splitlines()]
        assert [(r["project"], r["step_id"]) for r in records] == [
            ("core", "backup"), ("core", "packages"), ("app", "backup"), ("app", "packages"),
        ]

    def test_single_project_file(self, workspace, capsys):
        code = self._run("--non-interactive", "--no-backup", str(workspace / "core" / "pyproject.toml"))
        assert code == EXIT_OK
        assert "pytest" in (workspace / "core" / "pyproject.toml").read_text()
        assert "sklearn" in (workspace / "app" / "pyproject.toml").read_text()

    def test_exit_then_resume(self, workspace, capsys):
        # Menu entry 5 is Exit.
        with patch("upgrader.console.click.prompt", return_value=5):
            assert self._run("--no-backup", str(workspace)) == EXIT_OK
        assert "resume" in capsys.readouterr().out
        progress = json.loads((workspace / ".upgrader" / "progress.json").read_text())
        assert progress["currentProjectIdentifier"] == "core"

        assert self._run("--non-interactive", "--no-backup", str(workspace)) == EXIT_OK
        assert not (workspace / ".upgrader" / "progress.json").exists()

    def test_cancelled(self, workspace, capsys):
        with patch("upgrader.cli.upgrade.OrchestrationDriver.run", side_effect=OperationCancelled("stop")):
            assert self._run("--non-interactive", str(workspace)) == EXIT_CANCELLED
        assert "progress has been saved" in capsys.readouterr().out

    def test_missing_path(self, tmp_path):
        assert self._run(str(tmp_path / "nope")) == EXIT_STARTUP_ERROR

    def test_step_cycle_is_startup_error(self, workspace):
        cyclic = StepRegistry([
            lambda p: FakeStep("x", depends_on=["y"]),
            lambda p: FakeStep("y", depends_on=["x"]),
        ])
        with patch("upgrader.cli.upgrade.default_registry", return_value=cyclic):
            assert self._run("--non-interactive", str(workspace)) == EXIT_STARTUP_ERROR

    def test_incompatible_progress_file(self, workspace):
        state = workspace / ".upgrader"
        state.mkdir()
        (state / "progress.json").write_text(json.dumps({"formatVersion": "9"}))
        assert self._run("--non-interactive", str(workspace)) == EXIT_STARTUP_ERROR

    def test_negative_max_iterations(self, workspace):
        assert self._run("--non-interactive", "--max-iterations", "-1", str(workspace)) == EXIT_STARTUP_ERROR
        assert not (workspace / ".upgrader").exists()

    def test_bad_iterations_env(self, workspace):
        with patch.dict(os.environ, {"UPGRADER_MAX_ITERATIONS": "lots"}):
            assert self._run("--non-interactive", str(workspace)) == EXIT_STARTUP_ERROR

    def test_bad_package_map(self, workspace, tmp_path):
        bad = tmp_path / "map.json"
        bad.write_text("{")
        assert self._run("--non-interactive", "--package-map", str(bad), str(workspace)) == EXIT_STARTUP_ERROR


class TestCancelOnSigterm:
    def test_sigterm_cancels_token(self):
        token = CancellationToken()
        previous = signal.getsignal(signal.SIGTERM)
        with cancel_on_sigterm(token):
            os.kill(os.getpid(), signal.SIGTERM)
        assert token.is_cancelled
        assert signal.getsignal(signal.SIGTERM) == previous

    def test_worker_thread_skips_installation(self):
        token = CancellationToken()
        seen = []

        def body():
            with cancel_on_sigterm(token):
                seen.append(signal.getsignal(signal.SIGTERM))

        thread = threading.Thread(target=body)
        thread.start()
        thread.join()
        assert seen == [signal.getsignal(signal.SIGTERM)]
