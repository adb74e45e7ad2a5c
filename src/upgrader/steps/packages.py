"""Bring a project's declared dependencies to a fixed point."""

from __future__ import annotations

import logging
from typing import Sequence

from upgrader.cancellation import CancellationToken
from upgrader.convergence import AnalyzerError, ConvergenceOutcome, ConvergenceRunner
from upgrader.defaults import MAX_ANALYSIS_ITERATIONS
from upgrader.models import ExecutionContext, Project, RiskLevel, StepStatus
from upgrader.ports import DependencyAnalyzer, ProjectDeclarationPort
from upgrader.step import Step, StepApplyResult, StepInitResult

log = logging.getLogger("upgrader.steps.packages")


class PackageUpdaterStep(Step):
    id = "packages"
    title = "Update package dependencies"
    description = (
        "Analyze the project's dependencies and apply the recommended additions "
        "and removals, re-analyzing until no further changes are recommended."
    )
    depends_on = ("backup",)

    def __init__(
        self,
        project: Project,
        declaration: ProjectDeclarationPort,
        analyzers: Sequence[DependencyAnalyzer],
        max_iterations: int = MAX_ANALYSIS_ITERATIONS,
    ) -> None:
        super().__init__()
        self.project = project
        self.runner = ConvergenceRunner(declaration, analyzers, max_iterations)

    def _is_applicable(self, context: ExecutionContext, token: CancellationToken) -> bool:
        return context.current_project is not None and self.project.file.exists()

    def _initialize(self, context: ExecutionContext, token: CancellationToken) -> StepInitResult:
        try:
            state = self.runner.analyze(self.project, token)
        except AnalyzerError as e:
            log.error("%s", e, extra={"project": self.project.id})
            return StepInitResult(
                StepStatus.FAILED, f"Package analysis failed: {e.error}", RiskLevel.UNKNOWN,
            )
        if not state.has_changes:
            return StepInitResult(StepStatus.COMPLETE, "No package updates needed")
        risk = RiskLevel.MEDIUM if state.risk.rank >= RiskLevel.MEDIUM.rank else RiskLevel.LOW
        return StepInitResult(StepStatus.INCOMPLETE, state.summary(), risk)

    def _apply(self, context: ExecutionContext, token: CancellationToken) -> StepApplyResult:
        result = self.runner.run(self.project, token)
        if result.outcome == ConvergenceOutcome.ANALYZER_FAILED:
            return StepApplyResult(
                StepStatus.FAILED,
                f"Package analysis failed ({result.failed_analyzer}): {result.error}",
                RiskLevel.UNKNOWN,
            )
        if result.outcome == ConvergenceOutcome.CAP_REACHED:
            return StepApplyResult(
                StepStatus.FAILED,
                "Maximum package analysis and update iterations reached",
                RiskLevel.UNKNOWN,
            )
        details = "\n".join(result.applied) or "No package updates needed"
        return StepApplyResult(StepStatus.COMPLETE, details, result.risk)
