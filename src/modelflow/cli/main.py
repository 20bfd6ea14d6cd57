"""
Main CLI entry point.

    modelflow run      execute every enabled model group in dependency order
    modelflow plan     print the execution sequence and parallel levels
    modelflow debug    explain why a group can or cannot start
    modelflow state    show or clear the persisted run state
"""

import typer

from modelflow import __version__
from modelflow.cli import debug, plan, run, state


def version_callback(value: bool):
    if value:
        typer.echo(f"modelflow version {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="modelflow",
    help="Run model groups and their modules under static and conditional dependencies.",
    add_completion=True,
)

app.add_typer(run.app, name="run")
app.add_typer(plan.app, name="plan")
app.add_typer(debug.app, name="debug")
app.add_typer(state.app, name="state")


@app.callback(invoke_without_command=True)
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Print the modelflow version and exit.",
    ),
):
    """
    Orchestrate a workflow of model groups defined in config.yaml.

    Start with 'modelflow plan' to check the order groups will run in, then
    'modelflow run'. A stalled run can be inspected with 'modelflow debug
    <group-id>' and, when state is enabled, 'modelflow state show'.
    """
    if ctx.invoked_subcommand is None and not version:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def main():
    app()


if __name__ == "__main__":
    main()
