"""pyproject.toml as a project declaration, edited with tomlkit.

Packages and direct references come from ``[project].dependencies``; build
requirements from ``[build-system].requires``.  Edits go through tomlkit so
comments and layout of the rest of the file survive.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

import tomlkit
from tomlkit.exceptions import TOMLKitError

from upgrader.changeset import DependencyAnalysisState, DependencySnapshot
from upgrader.models import (
    FrameworkReference,
    PackageReference,
    Project,
    Reference,
    parse_framework_requirement,
    parse_requirement,
)

log = logging.getLogger("upgrader.adapters.pyproject")


class DeclarationError(Exception):
    """The project declaration could not be read or written."""
    pass


def read_toml_doc(path: Path) -> tomlkit.TOMLDocument:
    """Read a TOML file as a tomlkit document (preserves formatting)."""
    try:
        with path.open(encoding="utf-8") as f:
            return tomlkit.load(f)
    except (OSError, TOMLKitError) as e:
        raise DeclarationError(f"Cannot read {path}: {e}") from e


def write_toml_doc(path: Path, doc: tomlkit.TOMLDocument) -> None:
    """Write a tomlkit document to a file."""
    try:
        with path.open("w", encoding="utf-8") as f:
            f.write(tomlkit.dumps(doc))
    except OSError as e:
        raise DeclarationError(f"Cannot write {path}: {e}") from e


def project_name(doc: tomlkit.TOMLDocument, default: str) -> str:
    project = doc.get("project")
    if project is not None and project.get("name"):
        return str(project["name"])
    return default


def _requirements(doc: tomlkit.TOMLDocument, table: str, key: str) -> list[str]:
    section = doc.get(table)
    if section is None:
        return []
    values = section.get(key)
    if values is None:
        return []
    return [str(v) for v in values]


def _parse_all(texts: list[str], parse: Callable[[str], Any], path: Path) -> list[Any]:
    parsed: list[Any] = []
    for text in texts:
        try:
            parsed.append(parse(text))
        except ValueError:
            log.warning("Ignoring unparseable requirement %r in %s", text, path)
    return parsed


class PyprojectDeclaration:
    """Reads and rewrites the dependency declarations of a pyproject.toml."""

    def load(self, project: Project) -> DependencySnapshot:
        doc = read_toml_doc(project.file)
        snapshot = DependencySnapshot()
        for item in _parse_all(_requirements(doc, "project", "dependencies"), parse_requirement, project.file):
            if isinstance(item, Reference):
                snapshot.references.append(item)
            else:
                snapshot.packages.append(item)
        snapshot.framework_references = _parse_all(
            _requirements(doc, "build-system", "requires"), parse_framework_requirement, project.file,
        )
        return snapshot

    def apply_changes(self, project: Project, state: DependencyAnalysisState) -> None:
        doc = read_toml_doc(project.file)

        removed: set[PackageReference | Reference] = set(state.packages.deletions)
        removed.update(state.references.deletions)
        added: list[PackageReference | Reference] = state.references.additions + state.packages.additions
        if removed or added:
            deps = self._array(doc, "project", "dependencies")
            self._edit(deps, removed, added, parse_requirement)

        fw_removed: set[FrameworkReference] = set(state.framework_references.deletions)
        fw_added = state.framework_references.additions
        if fw_removed or fw_added:
            requires = self._array(doc, "build-system", "requires")
            self._edit(requires, fw_removed, fw_added, parse_framework_requirement)

        write_toml_doc(project.file, doc)
        log.info(
            "Updated %s: %d removal(s), %d addition(s)",
            project.file, len(removed) + len(fw_removed), len(added) + len(fw_added),
            extra={"project": project.id},
        )

    @staticmethod
    def _array(doc: tomlkit.TOMLDocument, table: str, key: str) -> Any:
        if table not in doc:
            doc[table] = tomlkit.table()
        section = doc[table]
        if key not in section:
            arr = tomlkit.array()
            arr.multiline(True)
            section[key] = arr
        return section[key]

    @staticmethod
    def _edit(arr: Any, removed: set[Any], added: list[Any], parse: Callable[[str], Any]) -> None:
        for index in reversed(range(len(arr))):
            try:
                entry = parse(str(arr[index]))
            except ValueError:
                continue
            if entry in removed:
                del arr[index]
        for item in added:
            arr.append(item.requirement)
