"""Replace packages named in a package map with their successors."""

from __future__ import annotations

import json
import logging
from importlib import resources
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from upgrader.cancellation import CancellationToken
from upgrader.changeset import DependencyAnalysisState
from upgrader.models import PackageReference, Project, RiskLevel, normalize_name

log = logging.getLogger("upgrader.analyzers.package_map")


class PackageMapError(Exception):
    pass


class PackageReplacement(BaseModel):
    name: str = Field(..., min_length=1)
    specifier: str = ""


class PackageMapEntry(BaseModel):
    name: str = Field(..., min_length=1)
    replacements: list[PackageReplacement] = Field(default_factory=list)
    risk: RiskLevel = RiskLevel.MEDIUM
    reason: str = ""


class PackageMap(BaseModel):
    packages: list[PackageMapEntry] = Field(default_factory=list)

    def lookup(self, name: str) -> PackageMapEntry | None:
        wanted = normalize_name(name)
        for entry in self.packages:
            if normalize_name(entry.name) == wanted:
                return entry
        return None


def load_package_map(path: str | Path | None = None) -> PackageMap:
    """Load a package map file, or the bundled map when no path is given."""
    try:
        if path:
            text = Path(path).read_text(encoding="utf-8")
        else:
            text = resources.files("upgrader.data").joinpath("package_map.json").read_text(encoding="utf-8")
        return PackageMap.model_validate(json.loads(text))
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise PackageMapError(f"Invalid package map {path or '(bundled)'}: {e}") from e


class PackageMapAnalyzer:
    name = "package-map"

    def __init__(self, package_map: PackageMap) -> None:
        self.package_map = package_map

    def analyze(
        self,
        project: Project,
        state: DependencyAnalysisState,
        token: CancellationToken,
    ) -> None:
        present = {p.name for p in state.packages.effective()}
        for package in state.packages.effective():
            entry = self.package_map.lookup(package.name)
            if entry is None or not state.packages.remove(package, entry.risk):
                continue
            log.info(
                "Replacing %s in %s: %s", package.name, project.id, entry.reason or "mapped package",
                extra={"project": project.id},
            )
            for replacement in entry.replacements:
                name = normalize_name(replacement.name)
                if name in present:
                    continue
                state.packages.add(
                    PackageReference(
                        name=name,
                        specifier=replacement.specifier.replace(" ", ""),
                        marker=package.marker,
                    ),
                    entry.risk,
                )
                present.add(name)
            if entry.reason:
                state.notes.append(f"{package.name}: {entry.reason}")
