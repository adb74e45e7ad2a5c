"""Tidy the build-system requirements."""

from __future__ import annotations

import logging

from upgrader.cancellation import CancellationToken
from upgrader.changeset import DependencyAnalysisState
from upgrader.models import Project, RiskLevel

log = logging.getLogger("upgrader.analyzers.build_requirements")

# Build requirements the setuptools backend already requests on its own.
REDUNDANT_WITH_SETUPTOOLS = ("wheel",)


class BuildRequirementsAnalyzer:
    name = "build-requirements"

    def analyze(
        self,
        project: Project,
        state: DependencyAnalysisState,
        token: CancellationToken,
    ) -> None:
        requires = state.framework_references.effective()
        if not any(ref.name == "setuptools" for ref in requires):
            return
        for ref in requires:
            if ref.name in REDUNDANT_WITH_SETUPTOOLS and state.framework_references.remove(ref, RiskLevel.LOW):
                log.info(
                    "Removing build requirement %s from %s", ref, project.id,
                    extra={"project": project.id},
                )
                state.notes.append(f"{ref.name} is requested by the setuptools build backend itself")
