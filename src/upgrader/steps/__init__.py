"""Concrete upgrade steps and the default step registry."""

from __future__ import annotations

from upgrader.adapters.pyproject_declaration import PyprojectDeclaration
from upgrader.config import UpgradeConfig
from upgrader.models import Project
from upgrader.ports import DependencyAnalyzer
from upgrader.registry import StepRegistry
from upgrader.steps.backup import AskFunc, BackupStep
from upgrader.steps.packages import PackageUpdaterStep


def default_registry(
    config: UpgradeConfig,
    analyzers: list[DependencyAnalyzer],
    ask: AskFunc | None = None,
) -> StepRegistry:
    declaration = PyprojectDeclaration()

    def backup(project: Project) -> BackupStep:
        return BackupStep(
            project,
            backup_path=config.backup_path,
            skip_backup=config.skip_backup,
            ask=ask,
        )

    def packages(project: Project) -> PackageUpdaterStep:
        return PackageUpdaterStep(project, declaration, analyzers, config.max_iterations)

    return StepRegistry([backup, packages])
