"""
rqst start - Open the issue (and starter PR) for a stage.
"""

from rich.console import Console

from repoquest.commands.status import next_step
from repoquest.workflow.executor import ActionResult


def report_result(session, result: ActionResult, console: Console) -> None:
    """Print what an action did, including any automatic reset."""
    if result.reset is not None:
        reset = result.reset
        if reset.automatic:
            console.print(
                f"[yellow]Reference-owned files were modified; the repository was reset "
                f"to {reset.baseline}.[/yellow]"
            )
            for path in reset.paths:
                console.print(f"  {path}")
        else:
            console.print(f"Repository reset to {reset.baseline}.")
        if reset.skipped:
            console.print(f"Skipped stage(s): {', '.join(str(i) for i in reset.skipped)}")
        if reset.reset_pr_url:
            console.print(f"Previous work preserved in {reset.reset_pr_url}")

    runtime = None
    if result.stage < len(result.descriptor.stages):
        runtime = result.descriptor.stages[result.stage]
    if runtime is not None:
        for label, url in (
            ("Issue", runtime.issue_url),
            ("Starter PR", runtime.starter_pr_url),
            ("Solution PR", runtime.solution_pr_url),
        ):
            if url:
                console.print(f"{label}: {url}")

    console.print(f"State: [cyan]{result.descriptor.progress}[/cyan]")
    console.print(next_step(session.quest, result.descriptor))


def cmd_start(args, session) -> int:
    result = session.file_feature_and_issue(args.stage)
    report_result(session, result, Console())
    return 0
