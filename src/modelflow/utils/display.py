"""
Rich rendering for Modelflow.

Tables for plans, run results, dependency debugging, and persisted state, plus
a live progress display fed by engine snapshots.
"""

from typing import Any

from rich.console import Console, Group
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskID, TextColumn
from rich.table import Table
from rich.text import Text

from modelflow.core.units import UnitSnapshot, UnitStatus

STATUS_ICONS = {
    UnitStatus.COMPLETED: "[green]✓[/green]",
    UnitStatus.FAILED: "[red]✗[/red]",
    UnitStatus.RUNNING: "[yellow]⠴[/yellow]",
    UnitStatus.IDLE: "[dim]·[/dim]",
    UnitStatus.DISABLED: "[dim]⊘[/dim]",
}

STATUS_STYLES = {
    UnitStatus.COMPLETED: "green",
    UnitStatus.FAILED: "red",
    UnitStatus.RUNNING: "yellow",
    UnitStatus.IDLE: "dim",
    UnitStatus.DISABLED: "dim",
}


def _flags(unit: UnitSnapshot | dict[str, Any]) -> str:
    get = unit.get if isinstance(unit, dict) else lambda key, default=None: getattr(unit, key, default)
    flags = []
    if get("frozen"):
        flags.append("frozen")
    if get("breakpoint"):
        flags.append("breakpoint")
    if get("optional") is False:
        flags.append("required")
    return ", ".join(flags) or "-"


def _format_outputs(outputs) -> str:
    parts = []
    for output in outputs:
        if output.value is None:
            continue
        unit = f" {output.unit}" if output.unit else ""
        parts.append(f"{output.name}={output.value}{unit}")
    return ", ".join(parts) or "-"


def render_plan(name: str, sequence: list[str], levels: list[list[str]], dependencies: dict[str, list[str]]) -> Group:
    """Execution sequence and parallel levels of a workflow."""
    table = Table(title=f"Execution Plan: {name}", title_style="bold")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Group", style="cyan")
    table.add_column("Level", justify="right")
    table.add_column("Depends on", style="dim")

    level_of = {group_id: i for i, batch in enumerate(levels) for group_id in batch}
    for position, group_id in enumerate(sequence, start=1):
        table.add_row(
            str(position),
            group_id,
            str(level_of.get(group_id, "-")),
            ", ".join(dependencies.get(group_id, [])) or "-",
        )

    batches = Text()
    for i, batch in enumerate(levels):
        batches.append(f"Level {i}: ", style="bold")
        batches.append(" ── ".join(batch) + "\n")
    return Group(table, Panel(batches, title="Parallel Levels"))


def render_groups(groups: tuple[UnitSnapshot, ...], title: str = "Model Groups", show_modules: bool = True) -> Table:
    """Status table of groups (and their modules)."""
    table = Table(title=title, title_style="bold")
    table.add_column("", width=1)
    table.add_column("Unit", style="cyan")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Flags", style="dim")
    table.add_column("Outputs")
    table.add_column("Error", style="red")

    for group in groups:
        table.add_row(
            STATUS_ICONS.get(group.status, " "),
            group.name if group.name == group.id else f"{group.name} ({group.id})",
            f"[{STATUS_STYLES.get(group.status, '')}]{group.status.value}[/]",
            f"{group.progress:.0f}%",
            _flags(group),
            _format_outputs(group.outputs),
            group.error or "",
        )
        if show_modules:
            for module in group.modules:
                table.add_row(
                    STATUS_ICONS.get(module.status, " "),
                    f"  └ {module.id}",
                    f"[{STATUS_STYLES.get(module.status, '')}]{module.status.value}[/]",
                    f"{module.progress:.0f}%",
                    _flags(module),
                    _format_outputs(module.outputs),
                    module.error or "",
                )
    return table


def render_run_summary(run: Any, duration: float) -> Panel:
    """Run identity, phase, and duration."""
    text = Text()
    text.append("Run: ", style="bold")
    text.append(f"{run.run_id or '-'}\n")
    text.append("Phase: ", style="bold")
    text.append(f"{run.phase}\n")
    text.append("Iteration: ", style="bold")
    text.append(f"{run.iteration_count}\n")
    text.append("Duration: ", style="bold")
    text.append(f"{duration:.2f}s")
    if run.paused:
        text.append("\nPaused", style="yellow")
        if run.paused_on_id:
            text.append(f" on breakpoint '{run.paused_on_id}'", style="yellow")
    if run.frozen_ids:
        text.append("\nFrozen: ", style="bold")
        text.append(", ".join(sorted(run.frozen_ids)))
    return Panel(text, title="Run")


def render_debug(info: dict[str, Any]) -> Group:
    """Dependency status of one group."""
    model = info["model"]
    header = Text()
    header.append(f"{model['name']} ({model['id']})", style="bold cyan")
    header.append(f"  status={model['status']}  eligibility={info['eligibility']}  ")
    header.append("processed" if info["processed"] else "not processed", style="green" if info["processed"] else "dim")

    table = Table(title="Dependencies", title_style="bold")
    table.add_column("Dependency", style="cyan")
    table.add_column("Status")
    table.add_column("Flags", style="dim")
    table.add_column("Satisfied")
    for dep in info["dependency_status"]:
        table.add_row(
            dep["id"],
            dep["status"],
            _flags(dep),
            "[green]yes[/green]" if dep["satisfied"] else "[red]no[/red]",
        )

    parts: list[Any] = [header, table]
    if info["rules"]:
        rules = Table(title="Conditional Rules", title_style="bold")
        rules.add_column("Rule")
        rules.add_column("Active")
        for rule in info["rules"]:
            rules.add_row(rule["rule"], "[green]yes[/green]" if rule["active"] else "no")
        parts.append(rules)
    if info["blocking"]:
        parts.append(Text(f"Blocked by: {', '.join(info['blocking'])}", style="red"))
    return Group(*parts)


def render_state_document(document: dict[str, Any]) -> Group:
    """Persisted state document."""
    summary = Text()
    summary.append("Run: ", style="bold")
    summary.append(f"{document.get('run_id') or '-'}\n")
    summary.append("Phase: ", style="bold")
    summary.append(f"{document.get('phase', '-')}\n")
    summary.append("Iteration: ", style="bold")
    summary.append(str(document.get("iteration_count", 0)))
    if document.get("frozen_ids"):
        summary.append("\nFrozen: ", style="bold")
        summary.append(", ".join(document["frozen_ids"]))

    table = Table(title="Groups", title_style="bold")
    table.add_column("Group", style="cyan")
    table.add_column("Status")
    table.add_column("Flags", style="dim")
    table.add_column("Modules", justify="right")
    for group in document.get("groups") or []:
        modules = group.get("modules") or []
        done = sum(1 for m in modules if m.get("status") == UnitStatus.COMPLETED.value)
        table.add_row(group["id"], group.get("status", "-"), _flags(group), f"{done}/{len(modules)}")

    parts: list[Any] = [Panel(summary, title="State"), table]
    history = document.get("history") or []
    if history:
        runs = Table(title="Run History", title_style="bold")
        runs.add_column("Run", style="cyan")
        runs.add_column("Iteration", justify="right")
        runs.add_column("Completed", justify="right")
        runs.add_column("Duration", justify="right")
        for record in history:
            runs.add_row(
                record["run_id"][:8],
                str(record.get("iteration_count", 0)),
                f"{record.get('completed_count', 0)}/{record.get('total_count', 0)}",
                f"{record.get('duration', 0.0):.2f}s",
            )
        parts.append(runs)
    return Group(*parts)


class RunProgress:
    """
    Live progress bars for a run, one per group.

    Subscribe ``update`` to the engine; it is called with every snapshot.
    """

    def __init__(self, console: Console | None = None):
        self.console = console or Console()
        self.progress = Progress(
            TextColumn("{task.fields[icon]}"),
            TextColumn("[cyan]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            TextColumn("[dim]{task.fields[status]}"),
            console=self.console,
            transient=False,
        )
        self._tasks: dict[str, TaskID] = {}

    def __enter__(self) -> "RunProgress":
        self.progress.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.progress.stop()

    def update(self, snapshot: Any) -> None:
        for group in snapshot.groups:
            fields = {"icon": STATUS_ICONS.get(group.status, " "), "status": group.status.value}
            if group.id not in self._tasks:
                self._tasks[group.id] = self.progress.add_task(group.name, total=100, **fields)
            self.progress.update(self._tasks[group.id], completed=group.progress, **fields)
