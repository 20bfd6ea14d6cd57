"""
modelflow debug - Explain why a model group can or cannot run.
"""

import json
from pathlib import Path

import typer
from rich.console import Console

from modelflow.exceptions import ModelflowError, UnknownEntityError
from modelflow.utils.display import render_debug

console = Console()

app = typer.Typer(name="debug", help="Inspect dependency status of a model group", invoke_without_command=True)


@app.callback()
def debug(
    ctx: typer.Context,
    group_id: str = typer.Argument(..., help="Model group id"),
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
) -> None:
    """
    Show dependency status, active rules, and blocking dependencies of a group.

    Uses the persisted state when state is enabled, so a stalled run can be
    inspected after the fact.
    """
    if ctx.invoked_subcommand is not None:
        return
    try:
        from modelflow.core.initialization import initialize

        _, engine = initialize(project_dir, env=env)
    except ModelflowError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    try:
        info = engine.debug_model_dependency_status(group_id)
    except UnknownEntityError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    finally:
        engine.shutdown()

    if as_json:
        typer.echo(json.dumps(info, indent=2))
    else:
        console.print(render_debug(info))
