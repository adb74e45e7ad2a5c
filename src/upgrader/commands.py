"""Operator commands and their result reporting.

A command is a labelled action of a known ``CommandKind``.  Results are
reported through a handler looked up by kind, with a fallback for kinds that
have no dedicated handler; a step-specific command may bring its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Mapping

from upgrader.cancellation import CancellationToken
from upgrader.models import ExecutionContext
from upgrader.observability import LogSettings
from upgrader.ports import PresenterPort, UserInputPort

if TYPE_CHECKING:
    from upgrader.step import Step

log = logging.getLogger("upgrader.commands")


class CommandKind(str, Enum):
    ADVANCE = "advance"
    SKIP = "skip"
    INSPECT = "inspect"
    CONFIGURE_LOGGING = "configure-logging"
    EXIT = "exit"
    STEP = "step"


CommandAction = Callable[[ExecutionContext, CancellationToken], bool]
ResultHandler = Callable[["Command", bool, PresenterPort], None]


@dataclass
class Command:
    kind: CommandKind
    label: str
    action: CommandAction
    result_handler: ResultHandler | None = None

    def execute(self, context: ExecutionContext, token: CancellationToken) -> bool:
        return bool(self.action(context, token))


# ---------------------------------------------------------------------------
# Result handlers
# ---------------------------------------------------------------------------

def _advance_result(command: Command, success: bool, presenter: PresenterPort) -> None:
    if not success:
        presenter.warn("No upgrade step applied")


def _skip_result(command: Command, success: bool, presenter: PresenterPort) -> None:
    if not success:
        presenter.warn("Skip step failed")


def _exit_result(command: Command, success: bool, presenter: PresenterPort) -> None:
    presenter.info("Exiting...")


def _configure_logging_result(command: Command, success: bool, presenter: PresenterPort) -> None:
    if not success:
        presenter.warn("Log level unchanged")


def _inspect_result(command: Command, success: bool, presenter: PresenterPort) -> None:
    pass


def default_result_handler(command: Command, success: bool, presenter: PresenterPort) -> None:
    if not success:
        presenter.warn(f"Command ({command.label}) did not succeed")


DEFAULT_RESULT_HANDLERS: dict[CommandKind, ResultHandler] = {
    CommandKind.ADVANCE: _advance_result,
    CommandKind.SKIP: _skip_result,
    CommandKind.INSPECT: _inspect_result,
    CommandKind.CONFIGURE_LOGGING: _configure_logging_result,
    CommandKind.EXIT: _exit_result,
}


class CommandResultHandlers:
    """Kind-keyed lookup of result handlers."""

    def __init__(
        self,
        handlers: Mapping[CommandKind, ResultHandler] | None = None,
        default: ResultHandler = default_result_handler,
    ) -> None:
        self._handlers = dict(DEFAULT_RESULT_HANDLERS if handlers is None else handlers)
        self._default = default

    def handler_for(self, command: Command) -> ResultHandler:
        if command.result_handler is not None:
            return command.result_handler
        return self._handlers.get(command.kind, self._default)

    def report(self, command: Command, success: bool, presenter: PresenterPort) -> None:
        self.handler_for(command)(command, success, presenter)


# ---------------------------------------------------------------------------
# Built-in commands
# ---------------------------------------------------------------------------

def advance_command(step: Step) -> Command:
    return Command(CommandKind.ADVANCE, "Apply next step", step.apply)


def skip_command(step: Step) -> Command:
    return Command(CommandKind.SKIP, "Skip next step", step.skip)


def inspect_command(step: Step, presenter: PresenterPort) -> Command:
    def _inspect(context: ExecutionContext, token: CancellationToken) -> bool:
        presenter.show_details(step)
        return True

    return Command(CommandKind.INSPECT, "See more step details", _inspect)


def configure_logging_command(
    settings: LogSettings,
    user_input: UserInputPort,
    presenter: PresenterPort,
) -> Command:
    def _configure(context: ExecutionContext, token: CancellationToken) -> bool:
        presenter.info(f"Current console log level: {settings.console_level}")
        answer = user_input.ask(
            f"Console log level ({', '.join(LogSettings.LEVELS)})", token
        ).strip()
        if not answer:
            return False
        if not settings.set_console_level(answer):
            presenter.warn(f"Unknown log level: {answer}")
            return False
        presenter.success(f"Console log level set to {settings.console_level}")
        return True

    return Command(CommandKind.CONFIGURE_LOGGING, "Configure logging", _configure)


def exit_command(on_exit: Callable[[], None]) -> Command:
    def _exit(context: ExecutionContext, token: CancellationToken) -> bool:
        on_exit()
        return True

    return Command(CommandKind.EXIT, "Exit", _exit)


class CommandProvider:
    """Builds the operator menu for the current step."""

    def __init__(
        self,
        presenter: PresenterPort,
        user_input: UserInputPort,
        log_settings: LogSettings,
        on_exit: Callable[[], None],
    ) -> None:
        self.presenter = presenter
        self.user_input = user_input
        self.log_settings = log_settings
        self.on_exit = on_exit

    def for_step(self, step: Step, context: ExecutionContext) -> list[Command]:
        commands = [
            advance_command(step),
            skip_command(step),
            inspect_command(step, self.presenter),
            configure_logging_command(self.log_settings, self.user_input, self.presenter),
            exit_command(self.on_exit),
        ]
        commands.extend(step.commands(context))
        return commands
