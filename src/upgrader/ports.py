"""Collaborator port interfaces for upgrader.

Defines the Protocol classes the orchestration core consumes.  Concrete
implementations live in ``upgrader.adapters``, ``upgrader.analyzers`` and
``upgrader.console``; tests substitute in-memory fakes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, Sequence, runtime_checkable

from upgrader.cancellation import CancellationToken
from upgrader.changeset import DependencyAnalysisState, DependencySnapshot
from upgrader.models import ExecutionContext, Project

if TYPE_CHECKING:
    from upgrader.commands import Command
    from upgrader.step import Step


# ---------------------------------------------------------------------------
# Project mutation and analysis
# ---------------------------------------------------------------------------

@runtime_checkable
class ProjectDeclarationPort(Protocol):
    def load(self, project: Project) -> DependencySnapshot: ...
    def apply_changes(self, project: Project, state: DependencyAnalysisState) -> None: ...


@runtime_checkable
class DependencyAnalyzer(Protocol):
    """Contributes recommended additions and removals to a shared analysis state."""

    name: str

    def analyze(
        self,
        project: Project,
        state: DependencyAnalysisState,
        token: CancellationToken,
    ) -> None: ...


# ---------------------------------------------------------------------------
# Operator interaction
# ---------------------------------------------------------------------------

@runtime_checkable
class PresenterPort(Protocol):
    def show_project(self, context: ExecutionContext) -> None: ...
    def show_steps(self, steps: Sequence[Step], current: Step | None) -> None: ...
    def show_details(self, step: Step) -> None: ...
    def info(self, message: str) -> None: ...
    def success(self, message: str) -> None: ...
    def warn(self, message: str) -> None: ...


@runtime_checkable
class UserInputPort(Protocol):
    is_interactive: bool

    def choose(
        self,
        prompt: str,
        commands: Sequence[Command],
        token: CancellationToken,
    ) -> Command: ...

    def ask(self, prompt: str, token: CancellationToken) -> str: ...
