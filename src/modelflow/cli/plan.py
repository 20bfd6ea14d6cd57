"""
modelflow plan - Show the execution plan without running anything.
"""

import json
from pathlib import Path

import typer
from rich.console import Console

from modelflow.exceptions import ModelflowError
from modelflow.utils.display import render_plan

console = Console()

app = typer.Typer(name="plan", help="Show the execution plan", invoke_without_command=True)


@app.callback()
def plan(
    ctx: typer.Context,
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    output_format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
) -> None:
    """
    Show the deterministic execution sequence and the parallel levels.
    """
    if ctx.invoked_subcommand is not None:
        return
    if output_format not in ("table", "json"):
        typer.echo(f"Error: unknown format '{output_format}' (expected table or json)", err=True)
        raise typer.Exit(1)

    try:
        from modelflow.core.initialization import initialize

        _, engine = initialize(project_dir, env=env, restore_state=False)
    except ModelflowError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    try:
        sequence = engine.get_execution_sequence()
        levels = engine.get_parallel_execution_groups()
        dependencies = {group_id: engine.get_model_dependencies(group_id) for group_id in engine.groups}
    finally:
        engine.shutdown()

    if output_format == "json":
        typer.echo(
            json.dumps(
                {
                    "name": engine.name,
                    "sequence": sequence,
                    "levels": levels,
                    "dependencies": dependencies,
                },
                indent=2,
            )
        )
        return

    console.print(render_plan(engine.name, sequence, levels, dependencies))
