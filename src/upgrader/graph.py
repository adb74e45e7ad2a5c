"""Step dependency graph: deterministic topological ordering with cycle detection."""

from __future__ import annotations

import logging
from typing import Iterable

import networkx as nx

from upgrader.step import Step

log = logging.getLogger("upgrader.graph")


class StepGraphError(Exception):
    """Base class for errors raised while building the step graph."""
    pass


class DuplicateStepError(StepGraphError):
    pass


class MissingDependencyError(StepGraphError):
    def __init__(self, step_id: str, missing: list[str]) -> None:
        super().__init__(
            f"Step {step_id} has unsatisfiable dependencies: {', '.join(missing)}"
        )
        self.step_id = step_id
        self.missing = missing


class CyclicDependencyError(StepGraphError):
    def __init__(self, remaining: list[str], cycle: list[str] | None = None) -> None:
        message = f"Cyclic step dependencies among: {', '.join(remaining)}"
        if cycle:
            message += f" (cycle: {' -> '.join(cycle + cycle[:1])})"
        super().__init__(message)
        self.remaining = remaining
        self.cycle = cycle or []


def build_step_graph(steps: Iterable[Step]) -> nx.DiGraph:
    """Directed graph with an edge ``a -> b`` whenever ``a`` must precede ``b``.

    ``dependency_of`` entries become reverse ``depends_on`` edges on their
    target; targets that are not part of the set are ignored.  A
    ``depends_on`` entry naming an unknown step raises
    ``MissingDependencyError``.
    """
    G = nx.DiGraph()
    for index, step in enumerate(steps):
        if step.id in G:
            raise DuplicateStepError(f"Duplicate step id: {step.id}")
        G.add_node(step.id, step=step, index=index)

    for step_id, data in list(G.nodes(data=True)):
        step: Step = data["step"]
        missing = [dep for dep in step.depends_on if dep not in G]
        if missing:
            raise MissingDependencyError(step_id, missing)
        for dep in step.depends_on:
            G.add_edge(dep, step_id, rel="depends_on")
        for target in step.dependency_of:
            if target not in G:
                log.debug("Step %s is a dependency of unknown step %s; ignored", step_id, target)
                continue
            G.add_edge(step_id, target, rel="dependency_of")
    return G


class StepGraph:
    """Orders a flat list of steps so every dependency comes first.

    Ties are broken by declaration order (Kahn's algorithm always emitting the
    earliest-declared ready step), so the same input always yields the same
    order and unrelated steps keep their relative order.
    """

    def __init__(self, steps: Iterable[Step]) -> None:
        self._steps = list(steps)
        self._graph = build_step_graph(self._steps)
        self._ordered = self._sort()

    @property
    def graph(self) -> nx.DiGraph:
        return self._graph

    def ordered(self) -> list[Step]:
        return list(self._ordered)

    def ids(self) -> list[str]:
        return [s.id for s in self._ordered]

    def get(self, step_id: str) -> Step | None:
        if step_id not in self._graph:
            return None
        return self._graph.nodes[step_id]["step"]

    def dependencies(self, step_id: str) -> list[Step]:
        """Direct predecessors of a step, in declaration order."""
        preds = sorted(self._graph.predecessors(step_id), key=self._index)
        return [self._graph.nodes[p]["step"] for p in preds]

    def add_step(self, step: Step) -> bool:
        """Insert a step, keeping the previous graph if the result is unsortable."""
        if step.id in self._graph:
            return False
        return self._rebuild(self._steps + [step], f"add {step.id}")

    def remove_step(self, step: Step | str) -> bool:
        step_id = step if isinstance(step, str) else step.id
        if step_id not in self._graph:
            return False
        return self._rebuild([s for s in self._steps if s.id != step_id], f"remove {step_id}")

    # -- internals ---------------------------------------------------------

    def _index(self, step_id: str) -> int:
        return self._graph.nodes[step_id]["index"]

    def _sort(self) -> list[Step]:
        emitted: list[str] = []
        try:
            for step_id in nx.lexicographical_topological_sort(self._graph, key=self._index):
                emitted.append(step_id)
        except nx.NetworkXUnfeasible:
            done = set(emitted)
            remaining = [s.id for s in self._steps if s.id not in done]
            try:
                cycle = [u for u, _ in nx.find_cycle(self._graph.subgraph(remaining))]
            except nx.NetworkXNoCycle:
                cycle = []
            raise CyclicDependencyError(remaining, cycle) from None
        log.debug("Step order: %s", ", ".join(emitted))
        return [self._graph.nodes[i]["step"] for i in emitted]

    def _rebuild(self, steps: list[Step], change: str) -> bool:
        try:
            graph = build_step_graph(steps)
            previous = (self._steps, self._graph)
            self._steps, self._graph = steps, graph
            try:
                self._ordered = self._sort()
            except StepGraphError:
                self._steps, self._graph = previous
                raise
        except StepGraphError as e:
            log.warning("Cannot %s: %s", change, e)
            return False
        return True
