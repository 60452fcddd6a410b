"""Git diff operations."""

from pathlib import Path

from repoquest.git.runner import run_git, GitResult


def get_diff_names(worktree: Path, ref: str) -> GitResult:
    """Diff the working tree (tracked files) against a ref, names only.

    Returned raw so callers can tell "no changes" from "bad ref".
    """
    return run_git(["diff", "--name-only", ref, "--"], worktree)


def parse_names(output: str) -> list[str]:
    return [f.strip() for f in output.splitlines() if f.strip()]
