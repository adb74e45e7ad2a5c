"""Move exact pins off yanked releases."""

from __future__ import annotations

import dataclasses
import logging

from upgrader.adapters.package_index import PackageIndexClient
from upgrader.cancellation import CancellationToken
from upgrader.changeset import DependencyAnalysisState
from upgrader.models import Project, RiskLevel

log = logging.getLogger("upgrader.analyzers.yanked")


class YankedReleaseAnalyzer:
    """Re-pins ``name==X`` requirements whose release X was yanked from the
    index to the index's latest release."""

    name = "yanked-releases"

    def __init__(self, index: PackageIndexClient) -> None:
        self.index = index

    def analyze(
        self,
        project: Project,
        state: DependencyAnalysisState,
        token: CancellationToken,
    ) -> None:
        pinned = [p for p in state.packages.effective() if p.pinned_version]
        if not pinned:
            return
        releases = self.index.fetch_all([p.name for p in pinned], token)
        for package in pinned:
            info = releases.get(package.name)
            version = package.pinned_version
            if info is None or version is None or not info.is_yanked(version):
                continue
            if info.is_yanked(info.latest):
                log.warning(
                    "%s %s is yanked and no replacement release is available", package.name, version,
                    extra={"project": project.id},
                )
                continue
            if state.packages.remove(package, RiskLevel.MEDIUM):
                state.packages.add(
                    dataclasses.replace(package, specifier=f"=={info.latest}"), RiskLevel.MEDIUM,
                )
                state.notes.append(f"{package.name} {version} was yanked from the package index")
