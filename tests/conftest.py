"""Shared fixtures and fakes for upgrader tests."""

import json
import logging
from pathlib import Path
from typing import Iterable, Sequence

import pytest

from upgrader.cancellation import CancellationToken
from upgrader.changeset import DependencyAnalysisState, DependencySnapshot
from upgrader.commands import Command, CommandKind
from upgrader.models import (
    ExecutionContext,
    PackageReference,
    Project,
    RiskLevel,
    StepStatus,
)
from upgrader.observability import LogSettings
from upgrader.step import Step, StepApplyResult, StepInitResult


# ---------------------------------------------------------------------------
# Auto-use fixtures: cleanup global state between tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_logging():
    """Restore root logger handlers and level after tests that call setup_logging."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

def write_pyproject(
    directory: Path,
    dependencies: Iterable[str] = (),
    requires: Iterable[str] = ("setuptools>=68",),
    name: str = "demo",
) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    lines = [
        "[build-system]",
        f"requires = {json.dumps(list(requires))}",
        'build-backend = "setuptools.build_meta"',
        "",
        "# project metadata",
        "[project]",
        f'name = "{name}"',
        'version = "0.1.0"',
        "dependencies = [",
        *[f"    {json.dumps(d)}," for d in dependencies],
        "]",
        "",
    ]
    path = directory / "pyproject.toml"
    path.write_text("\n".join(lines), encoding="utf-8")
    return path


def make_project(root: Path, project_id: str = ".", name: str = "demo") -> Project:
    directory = root if project_id == "." else root / project_id
    return Project(project_id, name, directory, directory / "pyproject.toml")


@pytest.fixture
def project(tmp_path) -> Project:
    return make_project(tmp_path / "demo")


@pytest.fixture
def context(tmp_path, project) -> ExecutionContext:
    ctx = ExecutionContext(input_path=tmp_path, projects=[project])
    ctx.current_project = project
    return ctx


@pytest.fixture
def token() -> CancellationToken:
    return CancellationToken()


@pytest.fixture
def log_settings() -> LogSettings:
    handler = logging.NullHandler()
    handler.setLevel(logging.INFO)
    return LogSettings(handler)


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------

class FakeStep(Step):
    """Step whose hook results are scripted; every hook call is journaled."""

    def __init__(
        self,
        step_id: str,
        *,
        depends_on: Sequence[str] = (),
        dependency_of: Sequence[str] = (),
        sub_steps: Sequence[Step] = (),
        required: bool = True,
        applicable: bool = True,
        init_status: StepStatus = StepStatus.INCOMPLETE,
        init_risk: RiskLevel = RiskLevel.NONE,
        apply_statuses: Sequence[StepStatus] = (StepStatus.COMPLETE,),
        apply_risk: RiskLevel = RiskLevel.NONE,
        init_error: Exception | None = None,
        apply_error: Exception | None = None,
        journal: list[str] | None = None,
    ) -> None:
        super().__init__(
            step_id=step_id,
            title=f"Step {step_id}",
            depends_on=depends_on,
            dependency_of=dependency_of,
            sub_steps=sub_steps,
            required=required,
        )
        self.applicable = applicable
        self.init_status = init_status
        self.init_risk = init_risk
        self.apply_statuses = list(apply_statuses)
        self.apply_risk = apply_risk
        self.init_error = init_error
        self.apply_error = apply_error
        self.journal = journal if journal is not None else []
        self.calls: list[str] = []

    def _note(self, op: str) -> None:
        self.calls.append(op)
        self.journal.append(f"{op}:{self.id}")

    def _is_applicable(self, context, token):
        self._note("is_applicable")
        return self.applicable

    def _initialize(self, context, token):
        self._note("initialize")
        if self.init_error is not None:
            raise self.init_error
        return StepInitResult(self.init_status, f"{self.id} initialized", self.init_risk)

    def _apply(self, context, token):
        self._note("apply")
        if self.apply_error is not None:
            raise self.apply_error
        status = self.apply_statuses.pop(0) if len(self.apply_statuses) > 1 else self.apply_statuses[0]
        return StepApplyResult(status, f"{self.id} applied", self.apply_risk)


# ---------------------------------------------------------------------------
# Operator collaborators
# ---------------------------------------------------------------------------

class RecordingPresenter:
    def __init__(self) -> None:
        self.projects: list[str | None] = []
        self.renders: list[tuple[list[str], str | None]] = []
        self.details: list[str] = []
        self.infos: list[str] = []
        self.successes: list[str] = []
        self.warnings: list[str] = []

    def show_project(self, context):
        self.projects.append(context.current_project.id if context.current_project else None)

    def show_steps(self, steps, current):
        self.renders.append(([s.id for s in steps], current.id if current else None))

    def show_details(self, step):
        self.details.append(step.id)

    def info(self, message):
        self.infos.append(message)

    def success(self, message):
        self.successes.append(message)

    def warn(self, message):
        self.warnings.append(message)


class ScriptedInput:
    """Picks commands by kind (or label) from a script, then exits."""

    def __init__(
        self,
        choices: Iterable[CommandKind | str] = (),
        answers: Iterable[str] = (),
        interactive: bool = True,
        cancel_on_empty: CancellationToken | None = None,
    ) -> None:
        self.is_interactive = interactive
        self.choices = list(choices)
        self.answers = list(answers)
        self.menus: list[list[str]] = []
        self.cancel_on_empty = cancel_on_empty

    def choose(self, prompt, commands: Sequence[Command], token):
        self.menus.append([c.label for c in commands])
        if not self.choices:
            if self.cancel_on_empty is not None:
                from upgrader.cancellation import OperationCancelled
                self.cancel_on_empty.cancel()
                raise OperationCancelled("scripted cancel")
            return next(c for c in commands if c.kind == CommandKind.EXIT)
        choice = self.choices.pop(0)
        for command in commands:
            if command.kind == choice or command.label == choice:
                return command
        raise AssertionError(f"No command {choice!r} in menu {[c.label for c in commands]}")

    def ask(self, prompt, token):
        return self.answers.pop(0) if self.answers else ""


# ---------------------------------------------------------------------------
# Dependency collaborators
# ---------------------------------------------------------------------------

class FakeDeclaration:
    """In-memory project declaration that applies change sets to its snapshot."""

    def __init__(self, packages: Iterable[PackageReference] = ()) -> None:
        self.snapshot = DependencySnapshot(packages=list(packages))
        self.loads = 0
        self.applies = 0

    def load(self, project):
        self.loads += 1
        return DependencySnapshot(
            references=list(self.snapshot.references),
            packages=list(self.snapshot.packages),
            framework_references=list(self.snapshot.framework_references),
        )

    def apply_changes(self, project, state: DependencyAnalysisState):
        self.applies += 1
        self.snapshot = DependencySnapshot(
            references=state.references.effective(),
            packages=state.packages.effective(),
            framework_references=state.framework_references.effective(),
        )


class AlwaysAddAnalyzer:
    """Recommends a brand-new package on every pass, so it never converges."""

    name = "always-add"

    def __init__(self, risk: RiskLevel = RiskLevel.LOW) -> None:
        self.calls = 0
        self.risk = risk

    def analyze(self, project, state, token):
        self.calls += 1
        state.packages.add(PackageReference(f"generated-{self.calls}"), self.risk)


class RemovePackageAnalyzer:
    """Recommends removing one package while it is present."""

    def __init__(self, package: str, risk: RiskLevel = RiskLevel.MEDIUM) -> None:
        self.name = f"remove-{package}"
        self.package = package
        self.risk = risk
        self.calls = 0

    def analyze(self, project, state, token):
        self.calls += 1
        for p in state.packages.effective():
            if p.name == self.package:
                state.packages.remove(p, self.risk)


class FailingAnalyzer:
    name = "failing"

    def __init__(self) -> None:
        self.calls = 0

    def analyze(self, project, state, token):
        self.calls += 1
        raise RuntimeError("index exploded")


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: marks tests that run the full CLI")
