"""Main CLI entry point using Typer."""
import asyncio
from pathlib import Path
from typing import Any, Dict, Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from ..api import (
    GenerationError,
    OpenRouterClient,
    create_progress_summarizer,
    create_repair_function,
)
from ..config import get_settings
from ..config.constants import DEFAULT_STATE_FILE
from ..generation import StoryExtractor
from ..models import ExtractionResult, Story
from ..schema import get_missing_required_fields, get_prompted_fields, missing_by_field
from ..utils.logging import setup_logging
from ..utils.session_logger import close_session_logger, init_session_logger


app = typer.Typer(
    name="storyintake",
    help="StoryIntake - conversational story intake with structured extraction",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


def load_state(path: Path) -> Dict[str, Any]:
    """Load the accumulated record from a YAML state file."""
    if not path.exists():
        return {}
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"State file {path} does not contain a mapping")
    return data


def save_state(path: Path, data: Dict[str, Any]) -> None:
    """Write the accumulated record to a YAML state file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)


def show_missing(result: ExtractionResult) -> None:
    """Print the required fields still missing, or a completion notice."""
    if result.is_complete:
        console.print("[green]✓ All required story fields are filled[/green]")
        return

    table = Table(title="Still missing")
    table.add_column("Field", style="cyan")
    table.add_column("Description")
    for path, description in missing_by_field(result.data, Story).items():
        table.add_row(path, description)
    console.print(table)


def show_prompted(data: Dict[str, Any]) -> None:
    unset = [name for name in get_prompted_fields(Story) if name not in data]
    if unset:
        console.print(f"[dim]You may also want to mention: {', '.join(unset)}[/dim]")


async def _run_extract(
    message: str,
    current: Dict[str, Any],
    model: Optional[str],
    question: Optional[str],
    stream: bool,
    repair: bool
) -> ExtractionResult:
    async with OpenRouterClient(console=console) as client:
        extractor = StoryExtractor(
            client,
            model=model,
            repair=create_repair_function(client, model=model) if repair else None
        )
        if stream:
            progress = create_progress_summarizer(client, console=console)
            return await extractor.extract_streaming(message, current, question, progress=progress)
        return await extractor.extract(message, current, question)


@app.command(help="Extract story details from a message into the state file")
def extract(
    message: str = typer.Argument(..., help="What the user said"),
    state: Path = typer.Option(DEFAULT_STATE_FILE, "--state", "-s", help="YAML file holding the story so far"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model ID (defaults to settings)"),
    question: Optional[str] = typer.Option(None, "--question", "-q", help="Question the message answers"),
    stream: bool = typer.Option(False, "--stream", help="Stream the answer and show progress summaries"),
    repair: bool = typer.Option(True, "--repair/--no-repair", help="Ask the model to fix invalid output")
):
    """Run one extraction turn and persist the merged record."""
    settings = get_settings()
    setup_logging(level="DEBUG" if settings.verbose else "INFO")
    init_session_logger(settings.logs_dir)

    try:
        current = load_state(state)
        result = asyncio.run(_run_extract(message, current, model, question, stream, repair))
        save_state(state, result.data)
        console.print(f"[green]✓ Saved story to {state}[/green]")
        show_missing(result)
        show_prompted(result.data)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        raise typer.Exit(130)
    except (GenerationError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    finally:
        close_session_logger()


@app.command(help="Show which required fields the state file still lacks")
def status(
    state: Path = typer.Option(DEFAULT_STATE_FILE, "--state", "-s", help="YAML file holding the story so far")
):
    try:
        data = load_state(state)
    except (ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    show_missing(ExtractionResult(data=data, missing_fields=get_missing_required_fields(data, Story)))
    show_prompted(data)


@app.command(help="Show or set configuration")
def config(
    key: Optional[str] = typer.Argument(None, help="Config key to show/set"),
    value: Optional[str] = typer.Argument(None, help="Value to set")
):
    """Show or set configuration values."""
    settings = get_settings()

    if not key:
        table = Table(title="Configuration")
        table.add_column("Key", style="cyan")
        table.add_column("Value")

        config_items = [
            ("api_key", f"{settings.openrouter_api_key[:10]}..."),
            ("default_model", settings.default_model),
            ("summary_model", settings.summary_model),
            ("max_retries", str(settings.max_retries)),
            ("progress_interval_ms", str(settings.progress_interval_ms)),
            ("logs_dir", str(settings.logs_dir)),
            ("show_token_usage", str(settings.show_token_usage)),
        ]
        for k, v in config_items:
            table.add_row(k, v)
        console.print(table)
        return

    if not hasattr(settings, key):
        console.print(f"[red]Unknown config key: {key}[/red]")
        raise typer.Exit(1)

    if value is None:
        console.print(f"{key}: {getattr(settings, key)}")
        return

    current = getattr(settings, key)
    try:
        if isinstance(current, bool):
            parsed: Any = value.lower() in ('true', '1', 'yes', 'on')
        elif isinstance(current, int):
            parsed = int(value)
        elif isinstance(current, float):
            parsed = float(value)
        else:
            parsed = value
    except ValueError:
        console.print(f"[red]Invalid value for {key}: {value}[/red]")
        raise typer.Exit(1)

    setattr(settings, key, parsed)
    settings.save_config_file(Path("config.yaml"))
    console.print(f"[green]✓ Set {key} = {parsed}[/green]")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-v", help="Show version")
):
    """
    StoryIntake - turn a conversation into a structured story record.
    """
    if version:
        from .. import __version__
        console.print(f"[cyan]StoryIntake v{__version__}[/cyan]")
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


if __name__ == "__main__":
    app()
