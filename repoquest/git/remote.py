"""Git remote operations."""

from pathlib import Path

from repoquest.git.runner import run_git, GitResult, NETWORK_TIMEOUT


def has_remote(repo: Path, name: str) -> bool:
    """Check if a named remote is configured."""
    result = run_git(["remote", "get-url", name], repo)
    return result.success


def get_remote_url(repo: Path, name: str) -> str | None:
    result = run_git(["remote", "get-url", name], repo)
    if result.success:
        return result.stdout.strip() or None
    return None


def fetch(repo: Path, remote: str) -> GitResult:
    """Fetch all branches from a remote."""
    return run_git(["fetch", "--prune", remote], repo, timeout=NETWORK_TIMEOUT)


def pull_ff_only(repo: Path, remote: str, branch: str) -> GitResult:
    """Pull with fast-forward only (no merge commits)."""
    return run_git(["pull", "--ff-only", remote, branch], repo, timeout=NETWORK_TIMEOUT)


def push_force(worktree: Path, remote: str, branch: str) -> GitResult:
    """Force-push a local branch to the same name on the remote."""
    return run_git(
        ["push", "--force", remote, f"{branch}:refs/heads/{branch}"],
        worktree,
        timeout=NETWORK_TIMEOUT,
    )


def push_ref(worktree: Path, remote: str, sha: str, branch: str) -> GitResult:
    """Force-push an arbitrary commit to a remote branch."""
    return run_git(
        ["push", "--force", remote, f"{sha}:refs/heads/{branch}"],
        worktree,
        timeout=NETWORK_TIMEOUT,
    )
