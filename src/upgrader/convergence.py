"""Analyze, mutate, re-analyze until a project's dependencies stop changing."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from upgrader.cancellation import CancellationToken, OperationCancelled
from upgrader.changeset import DependencyAnalysisState
from upgrader.defaults import MAX_ANALYSIS_ITERATIONS
from upgrader.models import Project, RiskLevel, max_risk
from upgrader.ports import DependencyAnalyzer, ProjectDeclarationPort

log = logging.getLogger("upgrader.convergence")


class AnalyzerError(Exception):
    """An analyzer raised while contributing to a change set."""

    def __init__(self, analyzer: str, error: Exception) -> None:
        super().__init__(f"Analyzer {analyzer} failed: {error}")
        self.analyzer = analyzer
        self.error = error


class ConvergenceOutcome(str, Enum):
    CONVERGED = "converged"
    CAP_REACHED = "cap_reached"
    ANALYZER_FAILED = "analyzer_failed"


@dataclass
class ConvergenceResult:
    outcome: ConvergenceOutcome
    iterations: int = 0
    analysis_passes: int = 0
    risk: RiskLevel = RiskLevel.NONE
    applied: list[str] = field(default_factory=list)
    error: str = ""
    failed_analyzer: str = ""
    last_state: DependencyAnalysisState | None = None

    @property
    def converged(self) -> bool:
        return self.outcome == ConvergenceOutcome.CONVERGED


class ConvergenceRunner:
    """Runs every analyzer in declared order, applies the combined change set,
    and repeats from a fresh read of the project until nothing is recommended.

    Each pass starts from the declaration as it is on disk, so one analyzer's
    edit is always seen by every analyzer on the next pass.  The cap is checked
    before applying, which bounds a run to ``max_iterations + 1`` analysis
    passes and ``max_iterations`` applies.
    """

    def __init__(
        self,
        declaration: ProjectDeclarationPort,
        analyzers: Sequence[DependencyAnalyzer],
        max_iterations: int = MAX_ANALYSIS_ITERATIONS,
    ) -> None:
        if max_iterations < 0:
            raise ValueError("max_iterations must be >= 0")
        self.declaration = declaration
        self.analyzers = list(analyzers)
        self.max_iterations = max_iterations

    def analyze(self, project: Project, token: CancellationToken) -> DependencyAnalysisState:
        """Run a single analysis pass without applying anything.

        Analyzer exceptions are raised as ``AnalyzerError``; ``run`` turns
        them into ``ANALYZER_FAILED``.
        """
        state = DependencyAnalysisState.from_snapshot(self.declaration.load(project))
        for analyzer in self.analyzers:
            token.raise_if_cancelled()
            log.debug("Running analyzer %s on %s", analyzer.name, project.id)
            try:
                analyzer.analyze(project, state, token)
            except OperationCancelled:
                raise
            except Exception as e:
                raise AnalyzerError(analyzer.name, e) from e
        return state

    def run(self, project: Project, token: CancellationToken) -> ConvergenceResult:
        result = ConvergenceResult(outcome=ConvergenceOutcome.CONVERGED)
        while True:
            token.raise_if_cancelled()
            result.analysis_passes += 1
            try:
                state = self.analyze(project, token)
            except AnalyzerError as e:
                result.outcome = ConvergenceOutcome.ANALYZER_FAILED
                result.failed_analyzer = e.analyzer
                result.error = str(e.error)
                log.error("Analyzer %s failed on %s: %s", e.analyzer, project.id, result.error)
                return result
            result.last_state = state

            if not state.has_changes:
                log.info(
                    "Dependencies of %s converged after %d iteration(s)",
                    project.id, result.iterations,
                    extra={"project": project.id, "iteration": result.iterations},
                )
                return result

            if result.iterations >= self.max_iterations:
                result.outcome = ConvergenceOutcome.CAP_REACHED
                log.warning(
                    "Dependencies of %s still changing after %d iteration(s)",
                    project.id, result.iterations,
                    extra={"project": project.id, "iteration": result.iterations},
                )
                return result

            result.risk = max_risk(result.risk, state.risk)
            self.declaration.apply_changes(project, state)
            result.applied.extend(state.summary().splitlines())
            result.iterations += 1
            log.info(
                "Applied dependency changes to %s (iteration %d)",
                project.id, result.iterations,
                extra={"project": project.id, "iteration": result.iterations},
            )

