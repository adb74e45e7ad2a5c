"""Dependency analyzers run by the package updater step, in declared order."""

from __future__ import annotations

from upgrader.adapters.package_index import PackageIndexClient
from upgrader.analyzers.build_requirements import BuildRequirementsAnalyzer
from upgrader.analyzers.duplicates import DuplicateDependencyAnalyzer
from upgrader.analyzers.package_map import PackageMapAnalyzer, load_package_map
from upgrader.analyzers.yanked import YankedReleaseAnalyzer
from upgrader.config import UpgradeConfig
from upgrader.ports import DependencyAnalyzer


def default_analyzers(
    config: UpgradeConfig,
    index: PackageIndexClient | None = None,
) -> list[DependencyAnalyzer]:
    analyzers: list[DependencyAnalyzer] = [
        DuplicateDependencyAnalyzer(),
        PackageMapAnalyzer(load_package_map(config.package_map or None)),
    ]
    if index is not None and not config.offline:
        analyzers.append(YankedReleaseAnalyzer(index))
    analyzers.append(BuildRequirementsAnalyzer())
    return analyzers
