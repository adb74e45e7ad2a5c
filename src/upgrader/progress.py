"""Persisted run progress: which project is in flight and which are finished.

Reads are forgiving (a missing, unreadable or malformed file is empty
progress) and writes are best-effort and atomic, so an interrupted run never
leaves a half-written file behind.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from upgrader.cancellation import CancellationToken
from upgrader.defaults import PROGRESS_FILE_NAME, PROGRESS_FORMAT_VERSION
from upgrader.models import ExecutionContext

log = logging.getLogger("upgrader.progress")


class ProgressFormatError(Exception):
    """The progress file was written by an incompatible format version."""
    pass


class PersistedProgress(BaseModel):
    format_version: str = Field(default=PROGRESS_FORMAT_VERSION, alias="formatVersion")
    current_project: str | None = Field(default=None, alias="currentProjectIdentifier")
    completed_projects: list[str] = Field(default_factory=list, alias="completedProjects")
    properties: dict[str, str] = Field(default_factory=dict)

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @property
    def is_empty(self) -> bool:
        return not (self.current_project or self.completed_projects or self.properties)

    def dumps(self) -> str:
        """Canonical serialization: sorted keys, sorted project lists, no timestamps."""
        data = self.model_dump(by_alias=True)
        data["completedProjects"] = sorted(set(data["completedProjects"]))
        return json.dumps(data, indent=2, sort_keys=True) + "\n"


# ---------------------------------------------------------------------------
# Context <-> record
# ---------------------------------------------------------------------------

def capture(context: ExecutionContext) -> PersistedProgress:
    return PersistedProgress(
        current_project=context.current_project.id if context.current_project else None,
        completed_projects=sorted(context.completed_projects),
        properties=dict(context.properties),
    )


def restore(context: ExecutionContext, progress: PersistedProgress) -> None:
    """Apply saved progress to a freshly discovered context.

    Identifiers of projects that no longer exist are dropped silently.
    """
    known = {p.id for p in context.projects}
    context.completed_projects = {pid for pid in progress.completed_projects if pid in known}
    context.properties.update(progress.properties)
    context.current_project = context.find_project(progress.current_project)
    if progress.current_project and context.current_project is None:
        log.info(
            "Saved project %s is no longer part of the workspace; starting fresh",
            progress.current_project,
        )


# ---------------------------------------------------------------------------
# File store
# ---------------------------------------------------------------------------

class ProgressStore:
    """JSON file holding one ``PersistedProgress`` record."""

    def __init__(self, state_dir: Path | str) -> None:
        self.path = Path(state_dir) / PROGRESS_FILE_NAME

    def load(self) -> PersistedProgress:
        if not self.path.exists():
            log.debug("No progress file at %s", self.path)
            return PersistedProgress()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            log.warning("Ignoring unreadable progress file %s: %s", self.path, e)
            return PersistedProgress()
        if not isinstance(data, dict):
            log.warning("Ignoring malformed progress file %s", self.path)
            return PersistedProgress()

        version = data.get("formatVersion", PROGRESS_FORMAT_VERSION)
        if not isinstance(version, str) or not _major(version).isdigit():
            log.warning("Ignoring progress file %s with malformed format version %r", self.path, version)
            return PersistedProgress()
        if _major(version) != _major(PROGRESS_FORMAT_VERSION):
            raise ProgressFormatError(
                f"Progress file {self.path} has format version {version}; "
                f"this release reads version {PROGRESS_FORMAT_VERSION}"
            )
        try:
            progress = PersistedProgress.model_validate(data)
        except ValidationError as e:
            log.warning("Ignoring malformed progress file %s: %s", self.path, e)
            return PersistedProgress()
        log.debug("Loaded progress from %s", self.path)
        return progress

    def save(self, progress: PersistedProgress, token: CancellationToken) -> bool:
        """Write the record atomically; failures are logged, never raised."""
        token.raise_if_cancelled()
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(progress.dumps(), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            log.warning("Could not save progress to %s: %s", self.path, e)
            return False
        log.debug("Saved progress to %s", self.path)
        return True

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            log.warning("Could not remove progress file %s: %s", self.path, e)
            return
        log.debug("Removed progress file %s", self.path)


def _major(version: str) -> str:
    return version.split(".", 1)[0].strip()
