"""
rqst refresh - Fetch and recompute the quest state once.
"""

from rich.console import Console

from repoquest.commands.status import render_state


def cmd_refresh(args, session) -> int:
    descriptor = session.refresh()
    render_state(session.quest, descriptor, Console())
    return 0
