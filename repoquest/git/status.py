"""Git status operations."""

from pathlib import Path

from repoquest.git.runner import run_git, GitResult


def get_status_porcelain(worktree: Path) -> GitResult:
    """Get git status in null-separated porcelain format."""
    return run_git(["status", "--porcelain", "-z"], worktree)


def parse_status_entries(output: str) -> list[tuple[str, str]]:
    """Parse `status --porcelain -z` output into (XY status, path) pairs.

    -z keeps filenames with spaces/special chars intact.
    """
    entries = []
    # -z format: "XY filename\0" or "XY new\0old\0" for renames
    parts = output.split('\0')
    i = 0
    while i < len(parts):
        part = parts[i]
        if len(part) < 3:
            i += 1
            continue

        code = part[:2]
        entries.append((code, part[3:]))

        # Renames (R) and copies (C) carry the source path as a second entry
        if code[0] in ('R', 'C'):
            i += 2
        else:
            i += 1

    return entries


def get_untracked_files(worktree: Path) -> list[str]:
    """Get list of untracked files."""
    result = run_git(["ls-files", "--others", "--exclude-standard"], worktree)
    return [f.strip() for f in result.stdout.splitlines() if f.strip()]
