"""Core data types for upgrader."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_name(name: str) -> str:
    """PEP 503 normalized distribution name."""
    return re.sub(r"[-_.]+", "-", name).lower()


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class RiskLevel(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    UNKNOWN = "unknown"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


# Unknown sorts above High so callers gating on risk treat it conservatively.
_RISK_RANK = {
    RiskLevel.NONE: 0,
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
    RiskLevel.UNKNOWN: 4,
}


def max_risk(*levels: RiskLevel) -> RiskLevel:
    return max(levels, key=lambda r: r.rank, default=RiskLevel.NONE)


class StepStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    INCOMPLETE = "incomplete"
    COMPLETE = "complete"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def is_done(self) -> bool:
        return self in (StepStatus.COMPLETE, StepStatus.SKIPPED, StepStatus.FAILED)


class DependencyCategory(str, Enum):
    REFERENCES = "references"
    PACKAGES = "packages"
    FRAMEWORK_REFERENCES = "framework_references"


# ---------------------------------------------------------------------------
# Dependency entries
# ---------------------------------------------------------------------------

_REQUIREMENT_RE = re.compile(
    r"^\s*(?P<name>[A-Za-z0-9][A-Za-z0-9._-]*)\s*"
    r"(?P<extras>\[[^\]]*\])?\s*"
    r"(?:@\s*(?P<url>[^;\s]+)\s*)?"
    r"(?P<specifier>[^;]*?)\s*"
    r"(?:;\s*(?P<marker>.*?))?\s*$"
)


@dataclass(frozen=True)
class PackageReference:
    """A distribution requirement resolved from a package index."""
    name: str
    specifier: str = ""
    extras: str = ""
    marker: str = ""

    @property
    def requirement(self) -> str:
        text = f"{self.name}{self.extras}{self.specifier}"
        if self.marker:
            text += f"; {self.marker}"
        return text

    @property
    def pinned_version(self) -> str | None:
        if self.specifier.startswith("==") and "," not in self.specifier:
            return self.specifier[2:].strip() or None
        return None

    def __str__(self) -> str:
        return self.requirement


@dataclass(frozen=True)
class Reference:
    """A direct reference (``name @ url``) to a distribution."""
    name: str
    url: str
    extras: str = ""
    marker: str = ""

    @property
    def requirement(self) -> str:
        text = f"{self.name}{self.extras} @ {self.url}"
        if self.marker:
            text += f" ; {self.marker}"
        return text

    @property
    def local_path(self) -> Path | None:
        """Filesystem path of a ``file:`` URL, as written (maybe relative)."""
        if not self.url.startswith("file:"):
            return None
        path = unquote(urlparse(self.url).path)
        return Path(path) if path else None

    def __str__(self) -> str:
        return self.requirement


@dataclass(frozen=True)
class FrameworkReference:
    """A build-system requirement."""
    name: str
    specifier: str = ""

    @property
    def requirement(self) -> str:
        return f"{self.name}{self.specifier}"

    def __str__(self) -> str:
        return self.requirement


def parse_requirement(text: str) -> PackageReference | Reference:
    """Parse a dependency string into a package or direct reference.

    Names are normalized and whitespace inside the version specifier is
    dropped so equal requirements compare equal however they were written.
    """
    m = _REQUIREMENT_RE.match(text)
    if m is None:
        raise ValueError(f"Unparseable requirement: {text!r}")
    name = normalize_name(m.group("name"))
    extras = (m.group("extras") or "").replace(" ", "")
    marker = (m.group("marker") or "").strip()
    if m.group("url"):
        return Reference(name=name, url=m.group("url"), extras=extras, marker=marker)
    specifier = re.sub(r"\s+", "", m.group("specifier") or "")
    return PackageReference(name=name, specifier=specifier, extras=extras, marker=marker)


def parse_framework_requirement(text: str) -> FrameworkReference:
    ref = parse_requirement(text)
    if isinstance(ref, Reference):
        return FrameworkReference(name=ref.name, specifier=f" @ {ref.url}")
    return FrameworkReference(name=ref.name, specifier=ref.specifier)


# ---------------------------------------------------------------------------
# Projects and results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Project:
    id: str
    name: str
    directory: Path
    file: Path

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "directory": str(self.directory),
            "file": str(self.file),
        }


@dataclass
class StepResult:
    step_id: str
    status: StepStatus
    details: str = ""
    project: str | None = None
    location: str = ""
    level: str = "info"
    timestamp: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "project": self.project,
            "location": self.location,
            "status": self.status.value,
            "details": self.details,
            "level": self.level,
            "timestamp": self.timestamp,
        }


# ---------------------------------------------------------------------------
# Execution context
# ---------------------------------------------------------------------------

@dataclass
class ExecutionContext:
    """Projects under upgrade plus the project currently being processed.

    ``current_project`` is only ever assigned by the orchestration driver;
    steps receive the context explicitly and read it.
    """
    input_path: Path
    projects: list[Project] = field(default_factory=list)
    current_project: Project | None = None
    completed_projects: set[str] = field(default_factory=set)
    properties: dict[str, str] = field(default_factory=dict)
    results: list[StepResult] = field(default_factory=list)

    @property
    def root(self) -> Path:
        return self.input_path if self.input_path.is_dir() else self.input_path.parent

    def find_project(self, project_id: str | None) -> Project | None:
        if not project_id:
            return None
        for project in self.projects:
            if project.id == project_id:
                return project
        return None

    def next_project(self) -> Project | None:
        for project in self.projects:
            if project.id not in self.completed_projects:
                return project
        return None

    @property
    def is_complete(self) -> bool:
        return bool(self.projects) and all(
            p.id in self.completed_projects for p in self.projects
        )

    def record(self, result: StepResult) -> None:
        if result.project is None and self.current_project is not None:
            result.project = self.current_project.id
        self.results.append(result)
