"""CLI commands for configuring providers and generating project documentation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, NoReturn, Optional, Union

import typer
from pydantic import ValidationError

from .config import (
    CONFIG_FILE,
    AppConfig,
    ConfigStore,
    GenerationParameters,
    HostedProviderSettings,
    Mode,
)
from .context import ContextManager
from .docgen import SectionGenerator
from .elicitation import ElicitationLoop
from .errors import ConsiliumError, PersistenceError
from .models import CompletionClient, available_providers, fetch_models
from .prompter import TyperPrompter, choose_one
from .session import SESSION_FILE, load_session_record, write_session_record
from .utils.log import configure_logging

APP_HELP = "AI Consilium: interview-driven infrastructure documentation."

LOGGER = logging.getLogger(__name__)

app = typer.Typer(help=APP_HELP)


@dataclass(slots=True)
class CLIState:
    """Options shared by every command."""

    config_path: Path
    verbose: bool = False

    def store(self) -> ConfigStore:
        return ConfigStore(self.config_path)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug details to stderr."),
    config: str = typer.Option(
        CONFIG_FILE,
        "--config",
        "-c",
        help="Path to the consilium configuration file.",
    ),
) -> None:
    configure_logging(verbose=verbose)
    ctx.obj = CLIState(config_path=Path(config), verbose=verbose)


def _state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        state = CLIState(config_path=Path(CONFIG_FILE))
        ctx.obj = state
    return state


def _fail(error: Exception) -> NoReturn:
    typer.secho(f"Error: {error}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from error


def _prompt_parameters(current: GenerationParameters) -> GenerationParameters:
    """Ask for sampling parameters until they pass validation."""
    while True:
        temperature = typer.prompt("Temperature (0-1)", default=current.temperature, type=float)
        max_tokens = typer.prompt("Max tokens", default=current.max_tokens, type=int)
        top_k = typer.prompt("Top K", default=current.top_k, type=int)
        try:
            return GenerationParameters(temperature=temperature, max_tokens=max_tokens, top_k=top_k)
        except ValidationError as error:
            for issue in error.errors():
                field = ".".join(str(part) for part in issue["loc"])
                typer.secho(f"Invalid {field}: {issue['msg']}", fg=typer.colors.RED)


def _prompt_secret(label: str, current: Optional[str]) -> Optional[str]:
    hint = " (leave blank to keep the current value)" if current else ""
    value = typer.prompt(f"{label}{hint}", default="", show_default=False, hide_input=True).strip()
    return value or current


def _select_model(config: AppConfig, current: Optional[str]) -> Optional[str]:
    """Offer the provider's model list, or free text when it cannot be listed."""
    try:
        models = fetch_models(config)
    except ConsiliumError as error:
        LOGGER.debug("Model listing failed", exc_info=True)
        typer.secho(f"Warning: could not fetch models: {error}", fg=typer.colors.YELLOW)
        models = []

    if models:
        return choose_one("Select a model:", models, default=current)

    value = typer.prompt(
        "Model name (leave blank for the provider default)",
        default=current or "",
        show_default=bool(current),
    ).strip()
    return value or None


def _configure_local(config: AppConfig) -> None:
    settings = config.lm_studio
    settings.domain = typer.prompt("LM Studio domain", default=settings.domain).strip()
    settings.parameters = _prompt_parameters(settings.parameters)
    settings.selected_model = _select_model(config, settings.selected_model)


def _configure_hosted(config: AppConfig) -> None:
    previous = config.hosted_provider
    name = choose_one("Choose a provider:", available_providers(), default=previous.name)
    settings = previous if previous.name == name else HostedProviderSettings(name=name)
    config.hosted_provider = settings

    settings.api_key = _prompt_secret("API key", settings.api_key)
    if name == "Azure OpenAI":
        for option in ("resource", "deployment"):
            value = typer.prompt(
                f"Azure {option}",
                default=settings.options.get(option, ""),
                show_default=bool(settings.options.get(option)),
            ).strip()
            if value:
                settings.options[option] = value
    settings.parameters = _prompt_parameters(settings.parameters)
    settings.selected_model = _select_model(config, settings.selected_model)


def _display_selected_options(infrastructure: Mapping[str, Union[str, List[str]]]) -> None:
    typer.secho("\nSelected options:", fg=typer.colors.BLUE)
    for key, value in infrastructure.items():
        rendered = ", ".join(value) if isinstance(value, list) else value
        typer.echo(f"  {key.replace('_', ' ')}: {rendered}")


@app.command()
def configure(ctx: typer.Context) -> None:
    """Interactively choose the provider, credentials and generation parameters."""
    state = _state(ctx)
    store = state.store()
    config = store.load()

    mode_value = choose_one(
        "Choose how completions are served:",
        [mode.value for mode in Mode],
        default=config.mode.value,
    )
    config.mode = Mode(mode_value)

    try:
        if config.mode is Mode.LOCAL:
            _configure_local(config)
        else:
            _configure_hosted(config)
        store.save(config)
    except ConsiliumError as error:
        _fail(error)

    typer.secho("Configuration saved successfully!", fg=typer.colors.GREEN)


@app.command()
def generate(
    ctx: typer.Context,
    project_name: str = typer.Argument(..., help="Name of the project; also the output directory."),
    fresh: bool = typer.Option(
        False,
        "--fresh",
        help="Discard answers stored by earlier sessions before asking questions.",
    ),
) -> None:
    """Interview the user about the project and write its documentation."""
    project_name = project_name.strip()
    if not project_name:
        raise typer.BadParameter("Project name must not be empty.", param_hint="PROJECT_NAME")

    state = _state(ctx)
    store = state.store()
    project_dir = Path.cwd() / project_name

    try:
        config = store.load()
        context = ContextManager(store)
        if fresh:
            context.reset()
        client = CompletionClient(config)

        typer.secho("Starting infrastructure questions...", fg=typer.colors.BLUE)
        result = ElicitationLoop(client, context, TyperPrompter()).run(project_name)
        if result.forced:
            typer.secho(
                f"Reached maximum of {result.question_count} questions. Proceeding to documentation generation.",
                fg=typer.colors.YELLOW,
            )

        try:
            project_dir.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise PersistenceError(f"Unable to create {project_dir}: {error}", path=project_dir) from error
        write_session_record(project_dir, project_name, result.context, result.messages)
        _display_selected_options(result.context.infrastructure)

        generator = SectionGenerator(client, project_dir, result.context)
        with typer.progressbar(length=len(generator.sections), label="Generating documentation") as bar:
            generator.generate(progress=lambda index, total, label: bar.update(1))
    except ConsiliumError as error:
        _fail(error)

    for section_key, subsection in generator.failed:
        typer.secho(
            f"Warning: {section_key} / {subsection} could not be generated; a placeholder was written.",
            fg=typer.colors.YELLOW,
        )
    typer.secho(f"Documentation generated in {generator.docs_dir}", fg=typer.colors.GREEN)


@app.command()
def status(
    ctx: typer.Context,
    project_name: Optional[str] = typer.Argument(
        None,
        help="Project directory whose session record should be summarised.",
    ),
) -> None:
    """Show the active provider settings and the stored project context."""
    state = _state(ctx)
    try:
        config = state.store().read()
    except ConsiliumError as error:
        _fail(error)

    typer.echo(f"Config: {state.config_path}")
    typer.echo(f"Mode: {config.mode.value}")
    if config.mode is Mode.LOCAL:
        typer.echo(f"Provider: LM Studio ({config.lm_studio.domain})")
    else:
        typer.echo(f"Provider: {config.hosted_provider.name or 'not configured'}")
    typer.echo(f"Model: {config.active_model() or 'provider default'}")
    parameters = config.active_parameters()
    typer.echo(
        f"Parameters: temperature={parameters.temperature} "
        f"max_tokens={parameters.max_tokens} top_k={parameters.top_k}"
    )

    if config.context.infrastructure:
        _display_selected_options(config.context.infrastructure)
    else:
        typer.echo("No answers recorded yet.")

    if project_name:
        try:
            record = load_session_record(Path.cwd() / project_name / SESSION_FILE)
        except ConsiliumError as error:
            _fail(error)
        typer.echo(
            f"\nSession {record.project_name}: {len(record.context.answered_questions)} answer(s), "
            f"{len(record.messages)} message(s), created {record.created_at.isoformat()}"
        )


if __name__ == "__main__":
    app()
