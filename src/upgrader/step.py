"""Upgrade steps: identity, declared ordering, status state machine, sub-steps.

Concrete steps subclass ``Step`` and override the ``_initialize`` / ``_apply``
hooks (and optionally ``_is_applicable`` / ``_skip``).  The public
``initialize`` / ``apply`` / ``skip`` methods own every status change: they
enforce the transition table, fold risk, capture step-local exceptions as
``FAILED`` and record a ``StepResult`` on the context whenever a step
finishes.  Cancellation is the only exception that escapes a step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Iterator

from upgrader.cancellation import CancellationToken, OperationCancelled
from upgrader.models import (
    ExecutionContext,
    RiskLevel,
    StepResult,
    StepStatus,
    max_risk,
)

if TYPE_CHECKING:
    from upgrader.commands import Command

log = logging.getLogger("upgrader.step")


class InvalidTransitionError(Exception):
    """Raised when a status change would move a step backwards."""
    pass


# Complete and Skipped are sticky; Failed may be retried or skipped.
_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.UNINITIALIZED: frozenset({
        StepStatus.INCOMPLETE, StepStatus.COMPLETE, StepStatus.SKIPPED, StepStatus.FAILED,
    }),
    StepStatus.INCOMPLETE: frozenset({
        StepStatus.INCOMPLETE, StepStatus.COMPLETE, StepStatus.SKIPPED, StepStatus.FAILED,
    }),
    StepStatus.FAILED: frozenset({
        StepStatus.INCOMPLETE, StepStatus.COMPLETE, StepStatus.SKIPPED, StepStatus.FAILED,
    }),
    StepStatus.COMPLETE: frozenset({StepStatus.COMPLETE}),
    StepStatus.SKIPPED: frozenset({StepStatus.SKIPPED}),
}


def can_transition(current: StepStatus, new: StepStatus) -> bool:
    return new in _TRANSITIONS[current]


@dataclass
class StepInitResult:
    status: StepStatus
    details: str = ""
    risk: RiskLevel = RiskLevel.NONE


@dataclass
class StepApplyResult:
    status: StepStatus
    details: str = ""
    risk: RiskLevel = RiskLevel.NONE


class Step:
    """Base class for every unit of the upgrade process."""

    id: str = ""
    title: str = ""
    description: str = ""
    depends_on: tuple[str, ...] = ()
    dependency_of: tuple[str, ...] = ()
    required: bool = True

    def __init__(
        self,
        *,
        step_id: str | None = None,
        title: str | None = None,
        description: str | None = None,
        depends_on: Iterable[str] | None = None,
        dependency_of: Iterable[str] | None = None,
        sub_steps: Iterable[Step] | None = None,
        required: bool | None = None,
    ) -> None:
        self.id = step_id or self.id or type(self).__name__
        self.title = title or self.title or self.id
        self.description = description or self.description
        self.depends_on = tuple(depends_on) if depends_on is not None else tuple(self.depends_on)
        self.dependency_of = (
            tuple(dependency_of) if dependency_of is not None else tuple(self.dependency_of)
        )
        self.required = self.required if required is None else required
        self.sub_steps: list[Step] = list(sub_steps or [])
        self.status = StepStatus.UNINITIALIZED
        self.risk = RiskLevel.NONE
        self.details = ""
        self.is_applicable: bool | None = None

    # -- public state ------------------------------------------------------

    @property
    def is_done(self) -> bool:
        return self.status.is_done

    def pending_sub_steps(self) -> list[Step]:
        return [s for s in self.sub_steps if s.required and not s.is_done]

    def walk(self, depth: int = 0) -> Iterator[tuple[Step, int]]:
        """This step and its sub-steps, depth-first, with nesting depth."""
        yield self, depth
        for sub in self.sub_steps:
            yield from sub.walk(depth + 1)

    def commands(self, context: ExecutionContext) -> list[Command]:
        """Step-specific commands appended to the operator menu."""
        return []

    # -- lifecycle ---------------------------------------------------------

    def initialize(self, context: ExecutionContext, token: CancellationToken) -> None:
        if self.status != StepStatus.UNINITIALIZED:
            log.debug("Step %s already initialized (%s)", self.id, self.status.value)
            return
        log.debug("Initializing step %s", self.id, extra={"step_id": self.id})
        try:
            self.is_applicable = bool(self._is_applicable(context, token))
            if not self.is_applicable:
                self._set(StepStatus.SKIPPED, "Step is not applicable")
            else:
                result = self._initialize(context, token)
                if result.status == StepStatus.UNINITIALIZED:
                    raise InvalidTransitionError(
                        f"Step {self.id} reported 'uninitialized' after initialization"
                    )
                status = result.status
                if status == StepStatus.COMPLETE and self.pending_sub_steps():
                    status = StepStatus.INCOMPLETE
                self._set(status, result.details, result.risk)
            if self.status == StepStatus.SKIPPED:
                for sub in self.sub_steps:
                    if sub.status == StepStatus.UNINITIALIZED:
                        sub.mark_skipped(f"Parent step {self.id} was skipped")
        except OperationCancelled:
            raise
        except Exception as e:
            log.exception("Step %s failed to initialize", self.id, extra={"step_id": self.id})
            self._fail(f"Initialization failed: {e}")
        self._record(context)

    def apply(self, context: ExecutionContext, token: CancellationToken) -> bool:
        if self.status == StepStatus.UNINITIALIZED:
            raise InvalidTransitionError(f"Step {self.id} must be initialized before it is applied")
        if self.status == StepStatus.COMPLETE:
            return True
        if self.status == StepStatus.SKIPPED:
            log.info("Step %s was skipped; nothing to apply", self.id)
            return False
        pending = self.pending_sub_steps()
        if pending:
            log.warning(
                "Step %s cannot be applied while sub-steps are pending: %s",
                self.id, ", ".join(s.id for s in pending),
                extra={"step_id": self.id},
            )
            return False

        log.info("Applying step %s", self.id, extra={"step_id": self.id})
        try:
            result = self._apply(context, token)
            self._set(result.status, result.details, result.risk)
        except OperationCancelled:
            raise
        except Exception as e:
            log.exception("Step %s failed to apply", self.id, extra={"step_id": self.id})
            self._fail(f"Apply failed: {e}")
        self._record(context)
        return self.status == StepStatus.COMPLETE

    def skip(self, context: ExecutionContext, token: CancellationToken) -> bool:
        if self.status == StepStatus.UNINITIALIZED:
            raise InvalidTransitionError(f"Step {self.id} must be initialized before it is skipped")
        if self.status == StepStatus.SKIPPED:
            return True
        if self.status == StepStatus.COMPLETE:
            log.info("Step %s is already complete and cannot be skipped", self.id)
            return False
        try:
            details = self._skip(context, token)
            for sub in self.sub_steps:
                if not sub.is_done and sub.status != StepStatus.UNINITIALIZED:
                    sub.skip(context, token)
                elif sub.status == StepStatus.UNINITIALIZED:
                    sub.mark_skipped(f"Parent step {self.id} was skipped")
            self._set(StepStatus.SKIPPED, details)
        except OperationCancelled:
            raise
        except Exception as e:
            log.exception("Step %s failed to skip", self.id, extra={"step_id": self.id})
            self._fail(f"Skip failed: {e}")
            return False
        self._record(context)
        return True

    def mark_skipped(self, details: str) -> None:
        """Skip a step that will never be initialized (blocked dependency, skipped parent)."""
        self._set(StepStatus.SKIPPED, details)
        for sub in self.sub_steps:
            if sub.status == StepStatus.UNINITIALIZED:
                sub.mark_skipped(details)

    # -- hooks for subclasses ----------------------------------------------

    def _is_applicable(self, context: ExecutionContext, token: CancellationToken) -> bool:
        return True

    def _initialize(self, context: ExecutionContext, token: CancellationToken) -> StepInitResult:
        raise NotImplementedError

    def _apply(self, context: ExecutionContext, token: CancellationToken) -> StepApplyResult:
        return StepApplyResult(StepStatus.COMPLETE)

    def _skip(self, context: ExecutionContext, token: CancellationToken) -> str:
        """Returns the details recorded for the skip."""
        return "Skipped by operator"

    # -- internals ---------------------------------------------------------

    def _set(self, status: StepStatus, details: str = "", risk: RiskLevel = RiskLevel.NONE) -> None:
        if not can_transition(self.status, status):
            raise InvalidTransitionError(
                f"Step {self.id} cannot move from {self.status.value} to {status.value}"
            )
        if status != self.status:
            log.debug(
                "Step %s: %s -> %s", self.id, self.status.value, status.value,
                extra={"step_id": self.id},
            )
        self.status = status
        self.details = details
        self.risk = max_risk(self.risk, risk)

    def _fail(self, details: str) -> None:
        if can_transition(self.status, StepStatus.FAILED):
            self._set(StepStatus.FAILED, details, RiskLevel.UNKNOWN)

    def _record(self, context: ExecutionContext) -> None:
        if not self.is_done:
            return
        context.record(StepResult(
            step_id=self.id,
            status=self.status,
            details=self.details,
            location=str(context.current_project.file) if context.current_project else "",
            level="error" if self.status == StepStatus.FAILED else "info",
        ))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} {self.status.value}>"
