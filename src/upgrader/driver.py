"""Orchestration driver: walks each project's ordered steps with the operator.

The driver is single-threaded.  It is the only writer of
``ExecutionContext.current_project``, it restores saved progress on start and
it saves progress after every finished project and once more on the way out,
whatever the reason for leaving (completion, operator exit, cancellation or
an unexpected error).  The final save runs under a fresh token so a
cancelled run still records where it stopped.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from upgrader.cancellation import CancellationToken
from upgrader.commands import CommandProvider, CommandResultHandlers
from upgrader.defaults import MAX_UNATTENDED_ATTEMPTS
from upgrader.graph import StepGraph
from upgrader.models import ExecutionContext, StepStatus
from upgrader.observability import LogSettings
from upgrader.ports import PresenterPort, UserInputPort
from upgrader.progress import ProgressStore, capture, restore
from upgrader.registry import StepRegistry
from upgrader.report import write_report
from upgrader.step import Step

log = logging.getLogger("upgrader.driver")

COMMAND_PROMPT = "Choose a command:"


class RunOutcome(str, Enum):
    COMPLETED = "completed"
    EXITED = "exited"


class OrchestrationDriver:
    def __init__(
        self,
        context: ExecutionContext,
        registry: StepRegistry,
        store: ProgressStore,
        presenter: PresenterPort,
        user_input: UserInputPort,
        log_settings: LogSettings,
        *,
        result_handlers: CommandResultHandlers | None = None,
        report_dir: Path | None = None,
    ) -> None:
        self.context = context
        self.registry = registry
        self.store = store
        self.presenter = presenter
        self.user_input = user_input
        self.commands = CommandProvider(presenter, user_input, log_settings, self.request_exit)
        self.result_handlers = result_handlers or CommandResultHandlers()
        self.report_dir = report_dir
        self._exit_requested = False
        self._graphs: dict[str, StepGraph] = {}

    def request_exit(self) -> None:
        log.info("Exit requested by operator")
        self._exit_requested = True

    def graph_for(self, project_id: str) -> StepGraph:
        return self._graphs[project_id]

    # -- main loop ---------------------------------------------------------

    def run(self, token: CancellationToken) -> RunOutcome:
        """Drive every remaining project to completion or until the operator exits.

        Graph errors and an incompatible progress file are raised before any
        step runs.  ``OperationCancelled`` propagates after progress is saved.
        """
        restore(self.context, self.store.load())
        # Fresh steps for every project; building them all up front surfaces
        # ordering errors before anything is changed on disk.
        self._graphs = {p.id: self.registry.build_graph(p) for p in self.context.projects}

        try:
            while not self._exit_requested:
                if self.context.current_project is None:
                    self.context.current_project = self.context.next_project()
                    if self.context.current_project is None:
                        break
                project = self.context.current_project
                log.info("Upgrading project %s", project.id, extra={"project": project.id})
                self.presenter.show_project(self.context)

                if not self._run_project(self._graphs[project.id], token):
                    break

                log.info("Finished project %s", project.id, extra={"project": project.id})
                self.context.completed_projects.add(project.id)
                self.context.current_project = None
                self._persist()
        finally:
            self._persist()
            if self.report_dir is not None:
                write_report(self.context.results, self.report_dir)
                self.context.results.clear()

        return RunOutcome.EXITED if self._exit_requested else RunOutcome.COMPLETED

    def _run_project(self, graph: StepGraph, token: CancellationToken) -> bool:
        """False when the operator asked to exit part way through."""
        ordered = graph.ordered()
        for step in ordered:
            if not self._drive(step, graph, ordered, token):
                return False
        return True

    def _drive(
        self,
        step: Step,
        graph: StepGraph,
        ordered: list[Step],
        token: CancellationToken,
    ) -> bool:
        if step.status == StepStatus.UNINITIALIZED:
            blocker = self._failed_dependency(step, graph)
            if blocker is not None:
                log.warning(
                    "Skipping step %s because dependency %s failed", step.id, blocker,
                    extra={"step_id": step.id},
                )
                step.mark_skipped(f"Skipped because dependency '{blocker}' failed")
                return True
            step.initialize(self.context, token)

        if step.is_applicable is False:
            return True
        if step.status == StepStatus.FAILED and not self.user_input.is_interactive:
            for sub in step.sub_steps:
                if sub.status == StepStatus.UNINITIALIZED:
                    sub.mark_skipped(f"Skipped because parent step '{step.id}' failed")
            return True
        if step.status == StepStatus.SKIPPED:
            return True

        # Parents are initialized first; their sub-steps finish before they do.
        for sub in step.sub_steps:
            if not self._drive(sub, graph, ordered, token):
                return False

        attempts = 0
        while not self._settled(step):
            token.raise_if_cancelled()
            self.presenter.show_steps(ordered, step)
            commands = self.commands.for_step(step, self.context)
            command = self.user_input.choose(COMMAND_PROMPT, commands, token)
            log.debug(
                "Executing command %s on %s", command.label, step.id,
                extra={"step_id": step.id, "command": command.kind.value},
            )
            success = command.execute(self.context, token)
            self.result_handlers.report(command, success, self.presenter)
            if not success:
                log.warning(
                    "Command (%s) did not succeed", command.label,
                    extra={"step_id": step.id, "command": command.kind.value},
                )
            if self._exit_requested:
                return False

            attempts += 1
            if not self.user_input.is_interactive and not step.is_done and attempts >= MAX_UNATTENDED_ATTEMPTS:
                log.warning(
                    "Step %s made no progress after %d attempts; skipping it", step.id, attempts,
                    extra={"step_id": step.id},
                )
                step.skip(self.context, token)
        return True

    def _settled(self, step: Step) -> bool:
        if not step.is_done:
            return False
        # An operator may retry or skip a failure; an unattended run moves on.
        return not (step.status == StepStatus.FAILED and self.user_input.is_interactive)

    @staticmethod
    def _failed_dependency(step: Step, graph: StepGraph) -> str | None:
        for dep_id in step.depends_on:
            dep = graph.get(dep_id)
            if dep is not None and dep.status == StepStatus.FAILED:
                return dep_id
        return None

    # -- persistence -------------------------------------------------------

    def _persist(self) -> None:
        """Save progress under a token nobody can cancel."""
        if self.context.is_complete:
            log.info("All projects upgraded")
            self.store.clear()
            return
        self.store.save(capture(self.context), CancellationToken.none())
