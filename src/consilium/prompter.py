"""Interactive collaborator that collects answers from the user."""

from __future__ import annotations

from typing import List, Protocol, Sequence

import typer

from .structured import Answer, QuestionResponse

__all__ = ["Prompter", "TyperPrompter", "choose_many", "choose_one", "parse_selection"]


class Prompter(Protocol):
    """Anything able to answer a question emitted by the provider."""

    def ask(self, question: QuestionResponse) -> Answer:
        ...


def parse_selection(raw: str, option_count: int) -> List[int]:
    """Parse comma-separated 1-based choices into unique 0-based indexes, keeping order.

    Raises ``ValueError`` for anything that is not an in-range integer.
    """
    indexes: List[int] = []
    for token in raw.replace(" ", ",").split(","):
        token = token.strip()
        if not token:
            continue
        number = int(token)
        if not 1 <= number <= option_count:
            raise ValueError(f"{number} is not between 1 and {option_count}")
        if number - 1 not in indexes:
            indexes.append(number - 1)
    return indexes


def _render_options(options: Sequence[str]) -> None:
    for index, option in enumerate(options, start=1):
        typer.echo(f"  {index}) {option}")


def choose_one(message: str, options: Sequence[str], *, default: str | None = None) -> str:
    """Render a numbered menu and return the chosen option."""
    typer.secho(message, fg=typer.colors.GREEN)
    _render_options(options)
    default_index = str(options.index(default) + 1) if default in options else None
    while True:
        raw = typer.prompt("Select an option", default=default_index)
        try:
            indexes = parse_selection(str(raw), len(options))
        except ValueError as error:
            typer.secho(f"Invalid choice: {error}", fg=typer.colors.RED)
            continue
        if len(indexes) != 1:
            typer.secho("Please select exactly one option.", fg=typer.colors.RED)
            continue
        return options[indexes[0]]


def choose_many(message: str, options: Sequence[str]) -> List[str]:
    """Render a numbered menu and return the chosen options in the order given."""
    typer.secho(message, fg=typer.colors.GREEN)
    _render_options(options)
    while True:
        raw = typer.prompt(
            "Select one or more options (comma-separated numbers)",
            default="",
            show_default=False,
        )
        try:
            indexes = parse_selection(str(raw), len(options))
        except ValueError as error:
            typer.secho(f"Invalid choice: {error}", fg=typer.colors.RED)
            continue
        return [options[index] for index in indexes]


class TyperPrompter:
    """Terminal prompter backed by ``typer.prompt``."""

    def ask(self, question: QuestionResponse) -> Answer:
        if question.type == "text":
            return str(typer.prompt(typer.style(question.question, fg=typer.colors.BLUE))).strip()
        if question.type == "list":
            return choose_one(question.question, question.options)
        if question.type == "multiple":
            return choose_many(question.question, question.options)
        raise ValueError(f"Unsupported question type: {question.type}")
