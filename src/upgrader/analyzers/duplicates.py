"""Drop index requirements that duplicate a direct reference."""

from __future__ import annotations

import logging

from upgrader.cancellation import CancellationToken
from upgrader.changeset import DependencyAnalysisState
from upgrader.models import Project, RiskLevel

log = logging.getLogger("upgrader.analyzers.duplicates")


class DuplicateDependencyAnalyzer:
    """A distribution listed both as ``name @ url`` and as a plain requirement
    resolves to the direct reference; the plain requirement is removed."""

    name = "duplicate-dependencies"

    def analyze(
        self,
        project: Project,
        state: DependencyAnalysisState,
        token: CancellationToken,
    ) -> None:
        direct = {r.name for r in state.references.effective()}
        for package in state.packages.effective():
            if package.name in direct and state.packages.remove(package, RiskLevel.LOW):
                log.info(
                    "Removing %s from %s: already a direct reference", package, project.id,
                    extra={"project": project.id},
                )
