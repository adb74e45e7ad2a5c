"""Dependency change sets: additions and removals against a fixed baseline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, Iterable, Iterator, TypeVar

from upgrader.models import (
    DependencyCategory,
    FrameworkReference,
    PackageReference,
    Reference,
    RiskLevel,
    max_risk,
)

T = TypeVar("T")


class DependencyChangeSet(Generic[T]):
    """Tracks additions and deletions against an immutable baseline.

    ``add`` only accepts items missing from the baseline and ``remove`` only
    accepts items present in it, so additions and deletions stay disjoint and
    the effective collection is always ``baseline - deletions + additions``.
    Risk from every accepted change is folded into ``risk`` with ``max``.
    """

    def __init__(self, baseline: Iterable[T] = ()) -> None:
        self._baseline: frozenset[T] = frozenset(baseline)
        self._order: list[T] = list(dict.fromkeys(baseline))
        self._additions: dict[T, None] = {}
        self._deletions: dict[T, None] = {}
        self.risk = RiskLevel.NONE

    @property
    def baseline(self) -> frozenset[T]:
        return self._baseline

    @property
    def additions(self) -> list[T]:
        return list(self._additions)

    @property
    def deletions(self) -> list[T]:
        return list(self._deletions)

    @property
    def has_changes(self) -> bool:
        return bool(self._additions) or bool(self._deletions)

    def __contains__(self, item: object) -> bool:
        """Membership in the baseline, not in the effective collection."""
        return item in self._baseline

    def add(self, item: T, risk: RiskLevel = RiskLevel.NONE) -> bool:
        if item in self._baseline or item in self._additions:
            return False
        self._additions[item] = None
        self.risk = max_risk(self.risk, risk)
        return True

    def remove(self, item: T, risk: RiskLevel = RiskLevel.NONE) -> bool:
        if item not in self._baseline or item in self._deletions:
            return False
        self._deletions[item] = None
        self.risk = max_risk(self.risk, risk)
        return True

    def effective(self) -> list[T]:
        """Baseline order minus deletions, followed by additions in insertion order."""
        kept = [item for item in self._order if item not in self._deletions]
        return kept + list(self._additions)

    def __iter__(self) -> Iterator[T]:
        return iter(self.effective())

    def __len__(self) -> int:
        return len(self._baseline) - len(self._deletions) + len(self._additions)

    def __repr__(self) -> str:
        return (
            f"DependencyChangeSet(baseline={len(self._baseline)}, "
            f"+{len(self._additions)}, -{len(self._deletions)}, risk={self.risk.value})"
        )


# ---------------------------------------------------------------------------
# Per-project analysis state
# ---------------------------------------------------------------------------

@dataclass
class DependencySnapshot:
    """The dependency declarations of a project as read from disk."""
    references: list[Reference] = field(default_factory=list)
    packages: list[PackageReference] = field(default_factory=list)
    framework_references: list[FrameworkReference] = field(default_factory=list)


@dataclass
class DependencyAnalysisState:
    """One change set per dependency category, shared by every analyzer in a pass."""
    references: DependencyChangeSet[Reference]
    packages: DependencyChangeSet[PackageReference]
    framework_references: DependencyChangeSet[FrameworkReference]
    notes: list[str] = field(default_factory=list)

    @classmethod
    def from_snapshot(cls, snapshot: DependencySnapshot) -> DependencyAnalysisState:
        return cls(
            references=DependencyChangeSet(snapshot.references),
            packages=DependencyChangeSet(snapshot.packages),
            framework_references=DependencyChangeSet(snapshot.framework_references),
        )

    def categories(self) -> dict[DependencyCategory, DependencyChangeSet[Any]]:
        return {
            DependencyCategory.REFERENCES: self.references,
            DependencyCategory.PACKAGES: self.packages,
            DependencyCategory.FRAMEWORK_REFERENCES: self.framework_references,
        }

    @property
    def has_changes(self) -> bool:
        return any(cs.has_changes for cs in self.categories().values())

    @property
    def risk(self) -> RiskLevel:
        return max_risk(*(cs.risk for cs in self.categories().values()))

    def summary(self) -> str:
        lines: list[str] = []
        for category, cs in self.categories().items():
            for item in cs.deletions:
                lines.append(f"Remove {category.value[:-1].replace('_', ' ')} {item}")
            for item in cs.additions:
                lines.append(f"Add {category.value[:-1].replace('_', ' ')} {item}")
        return "\n".join(lines + self.notes)
