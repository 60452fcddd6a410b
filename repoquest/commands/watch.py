"""
rqst watch - Poll the forge and print every state change.

Runs until interrupted. Each refresh publishes a snapshot; only snapshots
whose progress differs from the previous one are printed.
"""

import threading

from rich.console import Console

from repoquest.commands.status import next_step


def cmd_watch(args, session) -> int:
    console = Console()
    stop = threading.Event()
    interval = args.interval if args.interval is not None else session.settings.poll_interval

    def print_changes():
        last = None
        with session.subscribe(replay_latest=True) as sub:
            for descriptor in sub:
                if descriptor.progress == last:
                    continue
                last = descriptor.progress
                console.print(f"State: [cyan]{descriptor.progress}[/cyan]")
                console.print(next_step(session.quest, descriptor))

    printer = threading.Thread(target=print_changes, daemon=True)
    printer.start()

    console.print(f"Watching {session.repo.path} every {interval}s (Ctrl-C to stop)")
    try:
        session.watch(stop, interval)
    except KeyboardInterrupt:
        pass
    finally:
        stop.set()
    return 0
