"""
rqst solution - File the reference solution PR for a stage.
"""

from rich.console import Console

from repoquest.commands.start import report_result


def cmd_solution(args, session) -> int:
    result = session.file_solution(args.stage)
    report_result(session, result, Console())
    return 0
