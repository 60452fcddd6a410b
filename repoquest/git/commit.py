"""Git commit, reset and cherry-pick operations."""

from pathlib import Path

from repoquest.git.runner import run_git, GitResult


def stage_all(worktree: Path) -> GitResult:
    """Stage all changes (new, modified, deleted)."""
    return run_git(["add", "-A"], worktree)


def commit(worktree: Path, message: str) -> GitResult:
    """Create a commit with the given message."""
    return run_git(["commit", "--allow-empty", "-m", message], worktree)


def reset_hard(worktree: Path, ref: str) -> GitResult:
    """Point the current branch, index and working tree at ref."""
    return run_git(["reset", "--hard", ref], worktree)


def reset_soft(worktree: Path, ref: str) -> GitResult:
    """Point the current branch at ref, keeping index and working tree."""
    return run_git(["reset", "--soft", ref], worktree)


def clean_untracked(worktree: Path) -> GitResult:
    """Remove untracked files and directories (ignored files are kept)."""
    return run_git(["clean", "-fd"], worktree)


def cherry_pick(worktree: Path, ref_range: str) -> GitResult:
    """Cherry-pick every commit in ref_range onto the current branch."""
    return run_git(["cherry-pick", ref_range], worktree, timeout=120)


def cherry_pick_abort(worktree: Path) -> GitResult:
    return run_git(["cherry-pick", "--abort"], worktree)


def stash_create(worktree: Path) -> GitResult:
    """Commit object for uncommitted tracked changes, without touching the tree.

    Prints nothing when there is nothing to stash.
    """
    return run_git(["stash", "create", "rqst: uncommitted changes"], worktree)
