"""Quest-provided git hooks, shipped in the working tree under .githooks/."""

import logging
import stat
import subprocess
from pathlib import Path

from repoquest.git.runner import DEFAULT_TIMEOUT, GitResult, run_git

logger = logging.getLogger(__name__)

HOOKS_DIR = ".githooks"
POST_CHECKOUT = "post-checkout"


def hooks_dir(worktree: Path) -> Path:
    return worktree / HOOKS_DIR


def make_executable(hook: Path) -> None:
    """Checkouts on some platforms drop the executable bit."""
    mode = hook.stat().st_mode
    hook.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def run_hook(worktree: Path, hook: Path, timeout: int = DEFAULT_TIMEOUT) -> GitResult:
    """Run a hook script from the top of the worktree, the way git would."""
    logger.debug(f"[GIT] hook {hook.name}")
    try:
        proc = subprocess.run([str(hook)], cwd=worktree, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        return GitResult.failed(f"{hook.name} timed out after {timeout}s", timed_out=True)
    except OSError as e:
        return GitResult.failed(f"{hook.name}: {e}")
    return GitResult(returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)


def set_hooks_path(worktree: Path) -> GitResult:
    return run_git(["config", "--local", "core.hooksPath", HOOKS_DIR], worktree)
