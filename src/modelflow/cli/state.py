"""
modelflow state - Inspect or clear the persisted state document.
"""

import json
from pathlib import Path

import typer
from rich.console import Console

from modelflow.config.loader import load_config
from modelflow.core.state import StateStore
from modelflow.exceptions import ModelflowError
from modelflow.utils.display import render_state_document

console = Console()

app = typer.Typer(name="state", help="Inspect persisted run state")


def _store(project_dir: Path, env: str | None) -> StateStore:
    try:
        config = load_config(project_dir, env=env)
    except (FileNotFoundError, ModelflowError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    return StateStore(config.data, project_dir=project_dir)


@app.command("show")
def show(
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
) -> None:
    """Show the persisted run, groups, and run history."""
    store = _store(project_dir, env)
    try:
        document = store.load()
    except ModelflowError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    if document is None:
        typer.echo(f"No state found at {store.path}")
        raise typer.Exit(1)
    if as_json:
        typer.echo(json.dumps(document, indent=2))
    else:
        console.print(render_state_document(document))


@app.command("clear")
def clear(
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
) -> None:
    """Delete the persisted state document."""
    store = _store(project_dir, env)
    store.clear()
    typer.echo(f"Cleared {store.path}")
