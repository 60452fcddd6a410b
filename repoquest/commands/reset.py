"""
rqst reset - Reset the repository to the start of a stage.

Resetting to the current stage discards local work (it stays reachable from
a "reset" PR). Resetting to a later stage skips the stages in between.
"""

from rich.console import Console
from rich.prompt import Confirm

from repoquest.commands.start import report_result
from repoquest.quest.state import Ongoing


def cmd_reset(args, session) -> int:
    """Hard reset to a stage, asking first unless --yes."""
    console = Console()
    target = args.stage
    if target is None:
        progress = session.state().progress
        if not isinstance(progress, Ongoing):
            console.print("ERROR: Quest is already completed")
            return 2
        target = progress.stage

    if not args.yes:
        stage = session.quest.stage(target) if 0 <= target < len(session.quest.stages) else None
        name = stage.name if stage else f"stage {target}"
        if not Confirm.ask(f"Reset main to the start of '{name}'? Local changes will be replaced"):
            console.print("Aborted.")
            return 1

    result = session.hard_reset(target)
    report_result(session, result, console)
    return 0
