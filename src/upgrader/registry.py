"""Explicit registry of step factories.

Each project gets freshly constructed steps, so a step's status never has to
be reset between projects.
"""

from __future__ import annotations

from typing import Callable, Iterable

from upgrader.graph import StepGraph
from upgrader.models import Project
from upgrader.step import Step

StepFactory = Callable[[Project], Step]


class StepRegistry:
    def __init__(self, factories: Iterable[StepFactory] = ()) -> None:
        self._factories: list[StepFactory] = list(factories)

    def register(self, factory: StepFactory) -> StepRegistry:
        self._factories.append(factory)
        return self

    def __len__(self) -> int:
        return len(self._factories)

    def create_steps(self, project: Project) -> list[Step]:
        return [factory(project) for factory in self._factories]

    def build_graph(self, project: Project) -> StepGraph:
        return StepGraph(self.create_steps(project))
