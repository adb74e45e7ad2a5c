"""Workspace discovery: find the projects under an input path and order them."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import networkx as nx

from upgrader.adapters.pyproject_declaration import DeclarationError, project_name, read_toml_doc
from upgrader.defaults import BACKUP_FLAG_FILE, PROJECT_FILE_NAME, SKIPPED_DIR_NAMES
from upgrader.models import ExecutionContext, Project, Reference, parse_requirement

log = logging.getLogger("upgrader.workspace")


class WorkspaceError(Exception):
    """The input path does not describe any upgradeable project."""
    pass


def _skip_dir(path: Path) -> bool:
    return (
        path.name.startswith(".")
        or path.name in SKIPPED_DIR_NAMES
        or (path / BACKUP_FLAG_FILE).exists()
        or (path / "pyvenv.cfg").exists()
    )


def find_project_files(root: Path) -> list[Path]:
    """Every pyproject.toml under *root*, in sorted path order."""
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        dirnames[:] = sorted(d for d in dirnames if not _skip_dir(current / d))
        if PROJECT_FILE_NAME in filenames:
            found.append(current / PROJECT_FILE_NAME)
    return sorted(found, key=lambda p: p.parent.relative_to(root).as_posix())


def _load_project(root: Path, file: Path) -> tuple[Project, list[Reference]]:
    directory = file.parent
    rel = directory.relative_to(root).as_posix()
    project_id = rel or "."
    refs: list[Reference] = []
    try:
        doc = read_toml_doc(file)
    except DeclarationError as e:
        log.warning("%s", e)
        return Project(project_id, directory.name, directory, file), refs
    name = project_name(doc, directory.resolve().name)
    for text in (doc.get("project") or {}).get("dependencies") or []:
        try:
            entry = parse_requirement(str(text))
        except ValueError:
            continue
        if isinstance(entry, Reference):
            refs.append(entry)
    return Project(project_id, name, directory, file), refs


def order_projects(projects: list[Project], references: dict[str, list[Reference]]) -> list[Project]:
    """Projects referenced through local ``file:`` URLs come before their referrers."""
    by_dir = {p.directory.resolve(): p for p in projects}
    index = {p.id: i for i, p in enumerate(projects)}
    G = nx.DiGraph()
    G.add_nodes_from(p.id for p in projects)
    for project in projects:
        for ref in references.get(project.id, []):
            local = ref.local_path
            if local is None:
                continue
            target = local if local.is_absolute() else project.directory / local
            dep = by_dir.get(target.resolve())
            if dep is not None and dep.id != project.id:
                G.add_edge(dep.id, project.id)
    try:
        order = list(nx.lexicographical_topological_sort(G, key=index.__getitem__))
    except nx.NetworkXUnfeasible:
        log.warning("Projects reference each other in a cycle; keeping path order")
        return list(projects)
    by_id = {p.id: p for p in projects}
    return [by_id[i] for i in order]


def load_workspace(input_path: str | Path) -> ExecutionContext:
    """Build the execution context for a pyproject.toml file or a directory."""
    path = Path(input_path)
    if not path.exists():
        raise WorkspaceError(f"Path does not exist: {path}")
    if path.is_file():
        if path.name != PROJECT_FILE_NAME:
            raise WorkspaceError(f"Not a {PROJECT_FILE_NAME} file: {path}")
        root, files = path.parent, [path]
    else:
        root, files = path, find_project_files(path)
    if not files:
        raise WorkspaceError(f"No {PROJECT_FILE_NAME} found under {path}")

    projects: list[Project] = []
    references: dict[str, list[Reference]] = {}
    for file in files:
        project, refs = _load_project(root, file)
        projects.append(project)
        references[project.id] = refs

    ordered = order_projects(projects, references)
    log.info("Found %d project(s) under %s", len(ordered), root)
    return ExecutionContext(input_path=path, projects=ordered)
