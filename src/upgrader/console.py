"""Console presentation and operator input built on click."""

from __future__ import annotations

import shutil
import string
import textwrap
from dataclasses import dataclass
from typing import Sequence

import click

from upgrader.cancellation import CancellationToken, OperationCancelled
from upgrader.commands import Command
from upgrader.defaults import DEFAULT_LINE_WIDTH, INDENT_WIDTH
from upgrader.models import ExecutionContext, StepStatus
from upgrader.step import Step


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

@dataclass
class StyledLine:
    text: str
    fg: str | None = None
    bold: bool = False


_STATUS_MARKERS: dict[StepStatus, tuple[str, str]] = {
    StepStatus.COMPLETE: ("[Complete]", "green"),
    StepStatus.FAILED: ("[Failed]", "red"),
    StepStatus.SKIPPED: ("[Skipped]", "bright_black"),
}
_NEXT_MARKER = ("[Next step]", "yellow")


def line_width() -> int:
    return shutil.get_terminal_size((DEFAULT_LINE_WIDTH, 24)).columns or DEFAULT_LINE_WIDTH


def wrap_text(text: str, width: int = DEFAULT_LINE_WIDTH, indent: int = 0) -> str:
    """Word-wrap each line of *text* to *width*, indenting every output line.

    Embedded newlines start a new line and tabs expand to four spaces.
    """
    prefix = " " * indent
    out: list[str] = []
    for paragraph in text.expandtabs(INDENT_WIDTH).splitlines():
        if not paragraph.strip():
            out.append("")
            continue
        out.extend(textwrap.wrap(
            paragraph,
            width=max(width, indent + 1),
            initial_indent=prefix,
            subsequent_indent=prefix,
            break_on_hyphens=False,
        ))
    return "\n".join(out)


def _ordinal(index: int, depth: int) -> str:
    if depth % 2 == 0:
        return f"{index + 1}."
    letters = string.ascii_lowercase
    label = ""
    index += 1
    while index:
        index, rem = divmod(index - 1, len(letters))
        label = letters[rem] + label
    return f"{label}."


def format_step_lines(
    steps: Sequence[Step],
    current: Step | None,
    depth: int = 0,
) -> list[StyledLine]:
    """One line per step and sub-step, numbered and indented by nesting depth."""
    lines: list[StyledLine] = []
    indent = " " * (INDENT_WIDTH * depth)
    for i, step in enumerate(steps):
        marker, color = _STATUS_MARKERS.get(step.status, ("", None))
        if step is current and not step.is_done:
            marker, color = _NEXT_MARKER
        text = f"{indent}{_ordinal(i, depth)} "
        if marker:
            text += f"{marker} "
        text += step.title
        lines.append(StyledLine(text, fg=color, bold=step is current))
        lines.extend(format_step_lines(step.sub_steps, current, depth + 1))
    return lines


def format_details(step: Step, width: int = DEFAULT_LINE_WIDTH) -> list[StyledLine]:
    lines = [
        StyledLine(step.title, bold=True),
        StyledLine("-" * len(step.title)),
    ]
    if step.description:
        lines.append(StyledLine(wrap_text(step.description, width)))
    lines.append(StyledLine(f"Status: {step.status.value}"))
    lines.append(StyledLine(f"Risk: {step.risk.value}"))
    if step.details:
        lines.append(StyledLine("Details:"))
        lines.append(StyledLine(wrap_text(step.details, width, indent=2)))
    return lines


# ---------------------------------------------------------------------------
# Presenter
# ---------------------------------------------------------------------------

class ConsolePresenter:
    def __init__(self, width: int | None = None) -> None:
        self.width = width

    @property
    def _width(self) -> int:
        return self.width or line_width()

    def _emit(self, lines: Sequence[StyledLine]) -> None:
        for line in lines:
            click.secho(line.text, fg=line.fg, bold=line.bold)

    def show_project(self, context: ExecutionContext) -> None:
        project = context.current_project
        if project is None:
            return
        click.echo("")
        click.secho(f"Current project: {project.name} ({project.id})", fg="cyan", bold=True)

    def show_steps(self, steps: Sequence[Step], current: Step | None) -> None:
        click.echo("")
        click.secho("Upgrade steps", bold=True)
        click.echo("")
        self._emit(format_step_lines(steps, current))

    def show_details(self, step: Step) -> None:
        click.echo("")
        self._emit(format_details(step, self._width))

    def info(self, message: str) -> None:
        click.echo(wrap_text(message, self._width))

    def success(self, message: str) -> None:
        click.secho(wrap_text(message, self._width), fg="green")

    def warn(self, message: str) -> None:
        click.secho(wrap_text(message, self._width), fg="yellow")


# ---------------------------------------------------------------------------
# Operator input
# ---------------------------------------------------------------------------

class ConsoleUserInput:
    """Numbered command menu read from the terminal.

    An interrupt or end-of-input at a prompt cancels the run token.
    """

    is_interactive = True

    def choose(
        self,
        prompt: str,
        commands: Sequence[Command],
        token: CancellationToken,
    ) -> Command:
        click.echo("")
        click.echo(prompt)
        for i, command in enumerate(commands, 1):
            click.echo(f"  {i}. {command.label}")
        try:
            choice = click.prompt(
                "Command", type=click.IntRange(1, len(commands)), default=1,
            )
        except click.Abort:
            token.cancel()
            raise OperationCancelled("Input cancelled by operator") from None
        token.raise_if_cancelled()
        return commands[choice - 1]

    def ask(self, prompt: str, token: CancellationToken) -> str:
        try:
            answer = click.prompt(prompt, default="", show_default=False)
        except click.Abort:
            token.cancel()
            raise OperationCancelled("Input cancelled by operator") from None
        token.raise_if_cancelled()
        return answer


class NonInteractiveUserInput:
    """Always picks the first command (advance) and answers questions with nothing."""

    is_interactive = False

    def choose(
        self,
        prompt: str,
        commands: Sequence[Command],
        token: CancellationToken,
    ) -> Command:
        token.raise_if_cancelled()
        return commands[0]

    def ask(self, prompt: str, token: CancellationToken) -> str:
        token.raise_if_cancelled()
        return ""
