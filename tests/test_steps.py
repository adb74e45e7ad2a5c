"""Tests for the concrete backup and package updater steps."""

from conftest import (
    AlwaysAddAnalyzer,
    FailingAnalyzer,
    FakeDeclaration,
    RecordingPresenter,
    RemovePackageAnalyzer,
    ScriptedInput,
    make_project,
    write_pyproject,
)
from upgrader.commands import CommandKind, CommandResultHandlers
from upgrader.config import UpgradeConfig
from upgrader.defaults import BACKUP_FLAG_FILE, BACKUP_LOCATION_PROPERTY
from upgrader.models import ExecutionContext, PackageReference, RiskLevel, StepStatus
from upgrader.steps import default_registry
from upgrader.steps.backup import BackupStep, default_backup_target, ensure_usable
from upgrader.steps.packages import PackageUpdaterStep


def _context(project):
    ctx = ExecutionContext(input_path=project.directory, projects=[project])
    ctx.current_project = project
    return ctx


def _project(tmp_path, deps=("requests",)):
    directory = tmp_path / "work" / "svc"
    write_pyproject(directory, dependencies=deps, name="svc")
    (directory / "svc.py").write_text("print('hi')\n")
    cache = directory / "__pycache__"
    cache.mkdir()
    (cache / "svc.cpython-312.pyc").write_bytes(b"\0")
    return make_project(directory)


class TestBackupTargets:
    def test_default_next_to_project(self, tmp_path):
        project = make_project(tmp_path / "svc")
        assert default_backup_target(project, "") == (tmp_path / "svc.backup").resolve()

    def test_under_base(self, tmp_path):
        project = make_project(tmp_path / "svc")
        assert default_backup_target(project, tmp_path / "bk") == (tmp_path / "bk" / "svc").resolve()

    def test_ensure_usable_skips_foreign_directories(self, tmp_path):
        taken = tmp_path / "svc.backup"
        taken.mkdir()
        (taken / "notes.txt").write_text("someone else's")
        assert ensure_usable(taken) == tmp_path / "svc.backup.0"

    def test_ensure_usable_reuses_backup(self, tmp_path):
        previous = tmp_path / "svc.backup"
        previous.mkdir()
        (previous / BACKUP_FLAG_FILE).write_text("")
        assert ensure_usable(previous) == previous


class TestBackupStep:
    def test_backs_up_project(self, tmp_path, token):
        project = _project(tmp_path)
        ctx = _context(project)
        step = BackupStep(project, backup_path=str(tmp_path / "bk"))
        step.initialize(ctx, token)
        assert step.status == StepStatus.INCOMPLETE
        assert step.apply(ctx, token) is True

        target = tmp_path / "bk" / "svc"
        assert (target / "svc.py").exists()
        assert (target / BACKUP_FLAG_FILE).exists()
        assert not (target / "__pycache__").exists()

    def test_existing_backup_is_complete(self, tmp_path, token):
        project = _project(tmp_path)
        ctx = _context(project)
        target = tmp_path / "bk" / "svc"
        target.mkdir(parents=True)
        (target / BACKUP_FLAG_FILE).write_text("")
        step = BackupStep(project, backup_path=str(tmp_path / "bk"))
        step.initialize(ctx, token)
        assert step.status == StepStatus.COMPLETE

    def test_no_backup_flag_skips(self, tmp_path, token):
        project = _project(tmp_path)
        step = BackupStep(project, skip_backup=True)
        step.initialize(_context(project), token)
        assert step.status == StepStatus.SKIPPED

    def test_target_inside_project_fails(self, tmp_path, token):
        project = _project(tmp_path)
        step = BackupStep(project, backup_path=str(project.directory / "inner"))
        step.initialize(_context(project), token)
        assert step.status == StepStatus.FAILED

    def test_not_applicable_without_current_project(self, tmp_path, token):
        project = _project(tmp_path)
        ctx = ExecutionContext(input_path=project.directory, projects=[project])
        step = BackupStep(project)
        step.initialize(ctx, token)
        assert step.is_applicable is False
        assert step.status == StepStatus.SKIPPED

    def test_base_location_from_properties(self, tmp_path, token):
        project = _project(tmp_path)
        ctx = _context(project)
        ctx.properties[BACKUP_LOCATION_PROPERTY] = str(tmp_path / "saved")
        step = BackupStep(project)
        step.initialize(ctx, token)
        assert step.target == (tmp_path / "saved" / "svc").resolve()


class TestSetBackupPathCommand:
    def test_set_path(self, tmp_path, token):
        project = _project(tmp_path)
        ctx = _context(project)
        answers = [str(tmp_path / "elsewhere")]
        step = BackupStep(project, ask=lambda prompt, tok: answers.pop(0))
        step.initialize(ctx, token)
        [command] = step.commands(ctx)
        assert command.kind == CommandKind.STEP

        presenter = RecordingPresenter()
        success = command.execute(ctx, token)
        CommandResultHandlers().report(command, success, presenter)
        expected = (tmp_path / "elsewhere" / "svc").resolve()
        assert success is True
        assert step.target == expected
        assert ctx.properties[BACKUP_LOCATION_PROPERTY] == str((tmp_path / "elsewhere").resolve())
        assert presenter.successes == [f"The backup path is now set to: {expected}"]

    def test_rejects_path_inside_project(self, tmp_path, token):
        project = _project(tmp_path)
        ctx = _context(project)
        step = BackupStep(project, ask=lambda prompt, tok: str(project.directory))
        step.initialize(ctx, token)
        before = step.target
        [command] = step.commands(ctx)
        assert command.execute(ctx, token) is False
        assert step.target == before

    def test_no_command_once_complete(self, tmp_path, token):
        project = _project(tmp_path)
        ctx = _context(project)
        step = BackupStep(project, ask=lambda prompt, tok: "")
        step.initialize(ctx, token)
        step.apply(ctx, token)
        assert step.commands(ctx) == []

    def test_no_command_without_input(self, tmp_path, token):
        project = _project(tmp_path)
        ctx = _context(project)
        step = BackupStep(project)
        step.initialize(ctx, token)
        assert step.commands(ctx) == []


class TestPackageUpdaterStep:
    def _step(self, tmp_path, declaration, analyzers, cap=3):
        project = _project(tmp_path)
        return project, PackageUpdaterStep(project, declaration, analyzers, cap)

    def test_nothing_to_do_is_complete(self, tmp_path, token):
        project, step = self._step(tmp_path, FakeDeclaration([PackageReference("requests")]), [])
        step.initialize(_context(project), token)
        assert step.status == StepStatus.COMPLETE
        assert step.details == "No package updates needed"

    def test_pending_changes_are_previewed(self, tmp_path, token):
        decl = FakeDeclaration([PackageReference("nose")])
        project, step = self._step(tmp_path, decl, [RemovePackageAnalyzer("nose", RiskLevel.HIGH)])
        step.initialize(_context(project), token)
        assert step.status == StepStatus.INCOMPLETE
        assert step.details == "Remove package nose"
        assert step.risk == RiskLevel.MEDIUM
        assert decl.applies == 0

    def test_low_risk_preview(self, tmp_path, token):
        decl = FakeDeclaration([PackageReference("nose")])
        project, step = self._step(tmp_path, decl, [RemovePackageAnalyzer("nose", RiskLevel.NONE)])
        step.initialize(_context(project), token)
        assert step.risk == RiskLevel.LOW

    def test_apply_converges(self, tmp_path, token):
        decl = FakeDeclaration([PackageReference("nose")])
        project, step = self._step(tmp_path, decl, [RemovePackageAnalyzer("nose")])
        ctx = _context(project)
        step.initialize(ctx, token)
        assert step.apply(ctx, token) is True
        assert decl.snapshot.packages == []

    def test_cap_reached_fails(self, tmp_path, token):
        project, step = self._step(tmp_path, FakeDeclaration(), [AlwaysAddAnalyzer()], cap=2)
        ctx = _context(project)
        step.initialize(ctx, token)
        assert step.apply(ctx, token) is False
        assert step.status == StepStatus.FAILED
        assert step.details == "Maximum package analysis and update iterations reached"
        assert step.risk == RiskLevel.UNKNOWN

    def test_analyzer_failure_during_initialize(self, tmp_path, token):
        project, step = self._step(tmp_path, FakeDeclaration(), [FailingAnalyzer()])
        step.initialize(_context(project), token)
        assert step.status == StepStatus.FAILED
        assert "index exploded" in step.details

    def test_not_applicable_without_project_file(self, tmp_path, token):
        project = make_project(tmp_path / "ghost")
        step = PackageUpdaterStep(project, FakeDeclaration(), [])
        step.initialize(_context(project), token)
        assert step.status == StepStatus.SKIPPED


class TestDefaultRegistry:
    def test_backup_then_packages(self, tmp_path):
        project = _project(tmp_path)
        graph = default_registry(UpgradeConfig(), []).build_graph(project)
        assert graph.ids() == ["backup", "packages"]

    def test_end_to_end_on_disk(self, tmp_path, token):
        project = _project(tmp_path, deps=["requests", "nose"])
        config = UpgradeConfig()
        config.backup_path = str(tmp_path / "bk")
        steps = default_registry(config, [RemovePackageAnalyzer("nose")], ask=ScriptedInput().ask).create_steps(project)
        ctx = _context(project)
        for step in steps:
            step.initialize(ctx, token)
            step.apply(ctx, token)
        assert [s.status for s in steps] == [StepStatus.COMPLETE, StepStatus.COMPLETE]
        text = project.file.read_text()
        assert '"nose"' not in text
        assert '"nose"' in (tmp_path / "bk" / "svc" / "pyproject.toml").read_text()
