"""
modelflow run - Execute the workflow.
"""

import asyncio
from pathlib import Path

import typer
from rich.console import Console

from modelflow.core.engine import EngineSnapshot, WorkflowEngine
from modelflow.exceptions import InitializationError, ModelflowError
from modelflow.utils.display import RunProgress, render_groups, render_run_summary
from modelflow.utils.logging import get_logger

logger = get_logger("modelflow.cli.run")

console = Console()

app = typer.Typer(name="run", help="Execute the workflow", invoke_without_command=True)


def _auto_continue(engine: WorkflowEngine):
    """Subscriber that releases each breakpoint hold as soon as it is reached."""
    continued: set[str] = set()

    def on_snapshot(snapshot: EngineSnapshot) -> None:
        unit_id = snapshot.run.paused_on_id
        if unit_id is None:
            continued.clear()
            return
        if unit_id in continued:
            return
        continued.add(unit_id)
        console.print(f"[yellow]Breakpoint reached on '{unit_id}', continuing[/yellow]")
        asyncio.get_running_loop().call_soon(engine.continue_after_breakpoint, unit_id)

    return on_snapshot


async def _execute(engine: WorkflowEngine, parallel: bool | None, show_progress: bool):
    engine.subscribe(_auto_continue(engine))
    if not show_progress:
        return await engine.run_all(parallel=parallel)
    with RunProgress(console) as progress:
        unsubscribe = engine.subscribe(progress.update)
        try:
            return await engine.run_all(parallel=parallel)
        finally:
            unsubscribe()


@app.callback()
def run(
    ctx: typer.Context,
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    parallel: bool | None = typer.Option(
        None, "--parallel/--sequential", help="Execution mode (default: engine.mode from config)"
    ),
    finalize: bool = typer.Option(False, "--finalize", help="Finalize the run once the main pass completes"),
    fresh: bool = typer.Option(False, "--fresh", help="Ignore persisted state"),
    progress: bool = typer.Option(False, "--progress", help="Show live progress bars"),
) -> None:
    """
    Execute every enabled model group in dependency order.

    Breakpoints are continued automatically. Exits with status 1 when a group
    fails or the run stalls on blocked groups.
    """
    if ctx.invoked_subcommand is not None:
        return

    logger.info("Initializing Modelflow...")
    try:
        from modelflow.core.initialization import initialize

        _, engine = initialize(project_dir, env=env, verbose=verbose, restore_state=not fresh)
    except InitializationError as e:
        logger.error(f"Initialization failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    except ModelflowError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    try:
        if not engine.groups:
            typer.echo("No model groups defined")
            raise typer.Exit(1)

        result = asyncio.run(_execute(engine, parallel, progress))
        if not result:
            typer.echo(f"Error: {result.error}", err=True)
            raise typer.Exit(1)

        if finalize and result.message != "stalled":
            finalized = engine.finalize_run()
            if not finalized:
                typer.echo(f"Error: {finalized.error}", err=True)
                raise typer.Exit(1)

        console.print(render_groups(engine.snapshot().groups))
        console.print(render_run_summary(engine.get_run_state(), engine.get_run_duration()))

        failed = engine.get_failed_models()
        if failed:
            typer.echo(f"Failed: {', '.join(failed)}", err=True)
            raise typer.Exit(1)
        if result.message == "stalled":
            typer.echo("Run stalled: some groups are blocked (see 'modelflow debug')", err=True)
            raise typer.Exit(1)
    finally:
        engine.shutdown()
