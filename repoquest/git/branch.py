"""Git branch and ref operations."""

from pathlib import Path

from repoquest.git.runner import run_git, GitResult


def get_current_branch(worktree: Path) -> str | None:
    """Get the current branch name, or None if detached HEAD."""
    result = run_git(["branch", "--show-current"], worktree)
    if result.success:
        return result.stdout.strip() or None
    return None


def ref_exists(repo: Path, ref: str) -> bool:
    """Check if a ref (branch, remote branch, tag or sha) resolves to a commit."""
    result = run_git(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"], repo)
    return result.success


def get_commit_sha(worktree: Path, ref: str = "HEAD") -> GitResult:
    """Resolve a ref to its SHA."""
    return run_git(["rev-parse", "--verify", f"{ref}^{{commit}}"], worktree)


def is_ancestor(worktree: Path, ancestor: str, descendant: str) -> bool:
    """Check if ancestor is an ancestor of descendant."""
    result = run_git(["merge-base", "--is-ancestor", ancestor, descendant], worktree)
    return result.success


def get_commit_count(worktree: Path, ref_range: str) -> int:
    """
    Get number of commits in a range.

    Args:
        worktree: Path to worktree
        ref_range: Git ref range (e.g., "upstream/intro-b..upstream/parser-a")

    Returns:
        Number of commits, or 0 on error
    """
    result = run_git(["rev-list", "--count", ref_range], worktree)
    if result.success:
        try:
            return int(result.stdout.strip())
        except ValueError:
            pass
    return 0


def create_branch(worktree: Path, name: str, base: str) -> GitResult:
    """Create (or reset) a branch at base and check it out."""
    return run_git(["checkout", "-B", name, base], worktree)


def checkout_branch(worktree: Path, name: str) -> GitResult:
    """Checkout an existing branch."""
    return run_git(["checkout", name], worktree)


def show_file(worktree: Path, ref: str, path: str) -> GitResult:
    """Read a file's contents at a ref."""
    return run_git(["show", f"{ref}:{path}"], worktree)
