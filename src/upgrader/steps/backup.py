"""Back up a project directory before anything in it is changed."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable

from upgrader.cancellation import CancellationToken
from upgrader.commands import Command, CommandKind
from upgrader.defaults import (
    BACKUP_FLAG_FILE,
    BACKUP_LOCATION_PROPERTY,
    BACKUP_SUFFIX,
    MAX_BACKUP_CANDIDATES,
    STATE_DIR_NAME,
)
from upgrader.models import ExecutionContext, Project, StepStatus, now_iso
from upgrader.ports import PresenterPort
from upgrader.step import Step, StepApplyResult, StepInitResult

log = logging.getLogger("upgrader.steps.backup")

AskFunc = Callable[[str, CancellationToken], str]


def default_backup_target(project: Project, base: str | Path | None) -> Path:
    """``<base>/<project-dir-name>`` when a base is set, else ``<project-dir>.backup``."""
    directory = project.directory.resolve()
    if base:
        return Path(base).expanduser().resolve() / directory.name
    return directory.with_name(directory.name + BACKUP_SUFFIX)


def ensure_usable(target: Path) -> Path:
    """First of ``target``, ``target.0``, ``target.1``... that is free or already a backup."""
    candidates = [target] + [Path(f"{target}.{i}") for i in range(MAX_BACKUP_CANDIDATES)]
    for candidate in candidates:
        if not candidate.exists():
            return candidate
        if candidate.is_dir() and ((candidate / BACKUP_FLAG_FILE).exists() or not any(candidate.iterdir())):
            return candidate
    raise FileExistsError(f"No usable backup location near {target}")


class BackupStep(Step):
    id = "backup"
    title = "Back up project"
    description = (
        "Copy the project directory to a backup location so the original can be "
        "restored if the upgrade does not work out."
    )

    def __init__(
        self,
        project: Project,
        *,
        backup_path: str = "",
        skip_backup: bool = False,
        ask: AskFunc | None = None,
    ) -> None:
        super().__init__()
        self.project = project
        self.backup_path = backup_path
        self.skip_backup = skip_backup
        self.ask = ask
        self.target: Path | None = None

    def _base(self, context: ExecutionContext) -> str:
        return self.backup_path or context.properties.get(BACKUP_LOCATION_PROPERTY, "")

    def _is_applicable(self, context: ExecutionContext, token: CancellationToken) -> bool:
        return context.current_project is not None

    def _initialize(self, context: ExecutionContext, token: CancellationToken) -> StepInitResult:
        if self.skip_backup:
            return StepInitResult(StepStatus.SKIPPED, "Backup disabled on the command line")
        self.target = default_backup_target(self.project, self._base(context))
        if self.target.is_relative_to(self.project.directory.resolve()):
            return StepInitResult(
                StepStatus.FAILED,
                f"Backup location {self.target} is inside the project directory",
            )
        if (self.target / BACKUP_FLAG_FILE).exists():
            return StepInitResult(StepStatus.COMPLETE, f"Existing backup found at {self.target}")
        return StepInitResult(
            StepStatus.INCOMPLETE,
            f"No existing backup found. Applying this step copies {self.project.directory} "
            f"to {self.target}",
        )

    def _apply(self, context: ExecutionContext, token: CancellationToken) -> StepApplyResult:
        target = self.target or default_backup_target(self.project, self._base(context))
        if (target / BACKUP_FLAG_FILE).exists():
            return StepApplyResult(StepStatus.COMPLETE, f"Existing backup found at {target}")
        if target.is_relative_to(self.project.directory.resolve()):
            raise ValueError(f"Backup location {target} is inside the project directory")
        target = ensure_usable(target)
        token.raise_if_cancelled()
        log.info("Backing up %s to %s", self.project.directory, target, extra={"project": self.project.id})
        shutil.copytree(
            self.project.directory,
            target,
            ignore=shutil.ignore_patterns(STATE_DIR_NAME, f"*{BACKUP_SUFFIX}", "__pycache__"),
            dirs_exist_ok=True,
        )
        (target / BACKUP_FLAG_FILE).write_text(
            f"Backup of {self.project.directory} created {now_iso()}\n", encoding="utf-8",
        )
        self.target = target
        return StepApplyResult(StepStatus.COMPLETE, f"Project backed up to {target}")

    # -- step-specific command ---------------------------------------------

    def commands(self, context: ExecutionContext) -> list[Command]:
        if self.ask is None or self.status in (StepStatus.COMPLETE, StepStatus.SKIPPED):
            return []
        ask = self.ask

        def _set_path(ctx: ExecutionContext, token: CancellationToken) -> bool:
            answer = ask("New backup location", token).strip()
            if not answer:
                return False
            target = default_backup_target(self.project, answer)
            if target.is_relative_to(self.project.directory.resolve()):
                log.warning("Backup location %s is inside the project directory", target)
                return False
            self.backup_path = answer
            ctx.properties[BACKUP_LOCATION_PROPERTY] = str(Path(answer).expanduser().resolve())
            self.target = target
            self.details = f"Applying this step copies {self.project.directory} to {target}"
            return True

        def _report(command: Command, success: bool, presenter: PresenterPort) -> None:
            if success:
                presenter.success(f"The backup path is now set to: {self.target}")
            else:
                presenter.warn("The backup path was not changed")

        return [Command(CommandKind.STEP, "Set backup path", _set_path, result_handler=_report)]
