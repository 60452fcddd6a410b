"""
rqst status - Show where the learner is in the quest.
"""

import json

from rich.console import Console
from rich.table import Table

from repoquest.quest.definition import QuestDefinition
from repoquest.quest.state import Completed, Ongoing, StateDescriptor


def next_step(quest: QuestDefinition, descriptor: StateDescriptor) -> str:
    """One-line hint for what the learner does next."""
    progress = descriptor.progress
    if isinstance(progress, Completed):
        return "Quest complete."
    if not isinstance(progress, Ongoing):
        raise TypeError(f"Unknown progress value: {progress!r}")

    stage = quest.stage(progress.stage)
    state = f"{progress.part.name.lower()}_{progress.status.value}"
    if state == "solution_start" and descriptor.stages[progress.stage].issue_url is None:
        return (
            f"The issue for '{stage.name}' is gone. Run 'rqst solution {progress.stage}' "
            "to recreate it along with the reference solution."
        )
    hints = {
        "starter_start": f"Run 'rqst start {progress.stage}' to open the issue for '{stage.name}'.",
        "starter_waiting": "Merge the starter PR on GitHub.",
        "solution_start": (
            "Solve the issue and close it, or run "
            f"'rqst solution {progress.stage}' to get the reference solution."
        ),
        "solution_waiting": "Merge the solution PR, then close the issue.",
    }
    return hints[state]


def render_state(quest: QuestDefinition, descriptor: StateDescriptor, console: Console) -> None:
    table = Table(title=quest.title, show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Stage")
    table.add_column("Issue")
    table.add_column("Starter PR")
    table.add_column("Solution PR")

    progress = descriptor.progress
    current = progress.stage if isinstance(progress, Ongoing) else None
    for index, runtime in enumerate(descriptor.stages):
        name = quest.stage(index).name
        if index == current:
            name = f"[bold]{name}[/bold]"
        table.add_row(
            str(index),
            name,
            runtime.issue_url or "-",
            runtime.starter_pr_url or "-",
            runtime.solution_pr_url or "-",
        )

    console.print(table)
    console.print(f"State: [cyan]{progress}[/cyan]")
    console.print(next_step(quest, descriptor))


def cmd_status(args, session) -> int:
    """Show the reconciled quest state."""
    descriptor = session.refresh() if args.fetch else session.state()

    if args.json:
        print(json.dumps(descriptor.to_dict(), indent=2))
        return 0

    render_state(session.quest, descriptor, Console())
    return 0
