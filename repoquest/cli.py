#!/usr/bin/env python3
"""rqst CLI entrypoint."""

import sys
import argparse
import logging
from pathlib import Path

from repoquest import __version__
from repoquest.lib.config import ConfigError, load_settings
from repoquest.lib.errors import ForgeError, QuestError
from repoquest.lib.github import check_gh_available
from repoquest.session import QuestSession
from repoquest.commands import refresh as cmd_refresh_module
from repoquest.commands import reset as cmd_reset_module
from repoquest.commands import solution as cmd_solution_module
from repoquest.commands import start as cmd_start_module
from repoquest.commands import status as cmd_status_module
from repoquest.commands import watch as cmd_watch_module

logger = logging.getLogger(__name__)


def setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def open_session(args) -> QuestSession:
    """Build the session for --dir, exiting with a message on setup errors."""
    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        print(f"ERROR: {e}")
        sys.exit(2)

    ok, message = check_gh_available()
    if not ok:
        print(f"ERROR: {message}")
        sys.exit(2)

    try:
        return QuestSession.open(Path(args.dir), settings=settings, quest_path=args.quest)
    except QuestError as e:
        print(f"ERROR: {e}")
        sys.exit(2)


def run_command(func, args) -> int:
    session = open_session(args)
    try:
        return func(args, session)
    except QuestError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"ERROR: {e}")
        if isinstance(e, ForgeError) and e.exhausted:
            print("GitHub kept failing after several retries. Nothing was lost; run the same command again later.")
        return 1


def cmd_status(args):
    return run_command(cmd_status_module.cmd_status, args)


def cmd_start(args):
    return run_command(cmd_start_module.cmd_start, args)


def cmd_solution(args):
    return run_command(cmd_solution_module.cmd_solution, args)


def cmd_reset(args):
    return run_command(cmd_reset_module.cmd_reset, args)


def cmd_refresh(args):
    return run_command(cmd_refresh_module.cmd_refresh, args)


def cmd_watch(args):
    return run_command(cmd_watch_module.cmd_watch, args)


def main():
    parser = argparse.ArgumentParser(prog='rqst', description='Repo quest CLI')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--dir', '-C', default='.', help='Quest repository (default: cwd)')
    parser.add_argument('--config', type=Path, help='Settings file (default: $RQST_CONFIG)')
    parser.add_argument('--quest', type=Path, help='Quest package file instead of the meta branch')
    parser.add_argument('--verbose', '-v', action='count', default=0, help='More logging (-vv for debug)')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # rqst status
    p_status = subparsers.add_parser('status', help='Show quest progress')
    p_status.add_argument('--json', action='store_true', help='Print the state as JSON')
    p_status.add_argument('--fetch', action='store_true', help='Fetch remotes first')
    p_status.set_defaults(func=cmd_status)

    # rqst start
    p_start = subparsers.add_parser('start', help='Open the issue and starter PR for a stage')
    p_start.add_argument('stage', type=int, help='Stage index')
    p_start.set_defaults(func=cmd_start)

    # rqst solution
    p_solution = subparsers.add_parser('solution', help='File the reference solution PR')
    p_solution.add_argument('stage', type=int, help='Stage index')
    p_solution.set_defaults(func=cmd_solution)

    # rqst reset
    p_reset = subparsers.add_parser('reset', help='Reset to the start of a stage (or skip ahead)')
    p_reset.add_argument('--stage', type=int, help='Target stage (default: current)')
    p_reset.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')
    p_reset.set_defaults(func=cmd_reset)

    # rqst refresh
    p_refresh = subparsers.add_parser('refresh', help='Fetch and recompute state')
    p_refresh.set_defaults(func=cmd_refresh)

    # rqst watch
    p_watch = subparsers.add_parser('watch', help='Poll and print state changes')
    p_watch.add_argument('--interval', type=float, help='Seconds between refreshes')
    p_watch.set_defaults(func=cmd_watch)

    args = parser.parse_args()
    setup_logging(args.verbose)
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
