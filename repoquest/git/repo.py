"""
Repository adapter bound to one working directory.

The function modules in this package return GitResult and leave checking to
the caller. GitRepo is the checked layer the quest engine uses: every failed
command becomes a RepositoryError with a kind. Nothing here retries.
"""

import logging
from pathlib import Path

from repoquest.git import branch, commit as commit_ops, diff, hooks, remote, status
from repoquest.git.runner import GitResult
from repoquest.lib.errors import RepoErrorKind, RepositoryError
from repoquest.quest.stage import matches_any

logger = logging.getLogger(__name__)


def classify_failure(result: GitResult) -> RepoErrorKind:
    """Map git's stderr to a RepositoryError kind."""
    stderr = result.stderr.lower()
    if "not a git repository" in stderr:
        return RepoErrorKind.NOT_A_REPO
    if any(s in stderr for s in (
        "unknown revision",
        "bad revision",
        "invalid reference",
        "not a valid object name",
        "needed a single revision",
        "did not match any file(s) known to git",
        "couldn't find remote ref",
    )):
        return RepoErrorKind.REF_NOT_FOUND
    if "[rejected]" in stderr or "non-fast-forward" in stderr or "failed to push" in stderr:
        return RepoErrorKind.PUSH_REJECTED
    if "would be overwritten" in stderr or "uncommitted changes" in stderr:
        return RepoErrorKind.DIRTY_TREE
    return RepoErrorKind.IO_ERROR


class GitRepo:
    """Local git operations for one quest working directory."""

    def __init__(self, path: Path, origin: str = "origin"):
        self.path = Path(path)
        self.origin = origin

    def _check(self, result: GitResult, what: str) -> GitResult:
        if result.success:
            return result
        kind = classify_failure(result)
        detail = result.stderr.strip().splitlines()
        raise RepositoryError(kind, f"git {what} failed", cause=detail[-1] if detail else None)

    # --- queries ---------------------------------------------------------

    def current_head(self) -> str:
        return self.resolve("HEAD")

    def current_branch(self) -> str | None:
        return branch.get_current_branch(self.path)

    def resolve(self, ref: str) -> str:
        result = self._check(branch.get_commit_sha(self.path, ref), f"rev-parse {ref}")
        return result.stdout.strip()

    def ref_exists(self, ref: str) -> bool:
        return branch.ref_exists(self.path, ref)

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        return branch.is_ancestor(self.path, ancestor, descendant)

    def has_remote(self, name: str) -> bool:
        return remote.has_remote(self.path, name)

    def remote_url(self, name: str) -> str | None:
        return remote.get_remote_url(self.path, name)

    def show(self, ref: str, path: str) -> str:
        return self._check(branch.show_file(self.path, ref, path), f"show {ref}:{path}").stdout

    def is_clean(self, owned: tuple[str, ...] = ()) -> bool:
        """No staged or unstaged modifications, no untracked files in owned paths."""
        result = self._check(status.get_status_porcelain(self.path), "status")
        for code, path in status.parse_status_entries(result.stdout):
            if code == "??":
                if matches_any(path, owned):
                    return False
                continue
            return False
        return True

    def diff_owned_files(self, patterns: tuple[str, ...], against: str) -> set[str]:
        """Paths matching patterns whose working-tree content differs from `against`."""
        result = self._check(diff.get_diff_names(self.path, against), f"diff {against}")
        changed = set(diff.parse_names(result.stdout))
        changed.update(status.get_untracked_files(self.path))
        return {p for p in changed if matches_any(p, patterns)}

    # --- local mutations -------------------------------------------------

    def create_branch_from(self, base_ref: str, name: str) -> None:
        self._check(branch.create_branch(self.path, name, base_ref), f"checkout -B {name}")

    def checkout(self, name: str) -> None:
        self._check(branch.checkout_branch(self.path, name), f"checkout {name}")

    def cherry_pick(self, base: str, target: str) -> bool:
        """Replay base..target onto HEAD. Returns False (tree untouched) on conflict."""
        # get_commit_count reads a missing ref as an empty range
        self.resolve(base)
        self.resolve(target)
        ref_range = f"{base}..{target}"
        if branch.get_commit_count(self.path, ref_range) == 0:
            logger.warning(f"[GIT] Nothing to cherry-pick in {ref_range}")
            return True
        result = commit_ops.cherry_pick(self.path, ref_range)
        if result.success:
            return True
        logger.warning(f"[GIT] Cherry-pick {ref_range} failed: {result.stderr.strip()}")
        self._check(commit_ops.cherry_pick_abort(self.path), "cherry-pick --abort")
        return False

    def commit(self, message: str) -> str:
        self._check(commit_ops.stage_all(self.path), "add -A")
        self._check(commit_ops.commit(self.path, message), "commit")
        return self.current_head()

    def snapshot(self) -> str:
        """Commit capturing uncommitted tracked changes, or HEAD when there are none."""
        result = self._check(commit_ops.stash_create(self.path), "stash create")
        return result.stdout.strip() or self.current_head()

    def reset_soft(self, ref: str) -> None:
        self._check(commit_ops.reset_soft(self.path, ref), f"reset --soft {ref}")

    def reset_hard_to(self, ref: str) -> None:
        """Destructive: index and working tree become identical to ref."""
        self._check(commit_ops.reset_hard(self.path, ref), f"reset --hard {ref}")
        self._check(commit_ops.clean_untracked(self.path), "clean -fd")

    def install_hooks(self) -> bool:
        """
        Enable the quest's .githooks: make them executable, run post-checkout
        once, and point core.hooksPath at the directory.

        Returns False when the repository ships no hooks.
        """
        directory = hooks.hooks_dir(self.path)
        if not directory.is_dir():
            return False
        for hook in directory.iterdir():
            if hook.is_file():
                hooks.make_executable(hook)
        post_checkout = directory / hooks.POST_CHECKOUT
        if post_checkout.is_file():
            self._check(hooks.run_hook(self.path, post_checkout), f"hook {hooks.POST_CHECKOUT}")
        self._check(hooks.set_hooks_path(self.path), "config core.hooksPath")
        logger.info(f"[GIT] Installed hooks from {directory}")
        return True

    # --- remote ----------------------------------------------------------

    def fetch(self, remote_name: str) -> None:
        self._check(remote.fetch(self.path, remote_name), f"fetch {remote_name}")

    def pull_ff_only(self, branch_name: str) -> None:
        self._check(
            remote.pull_ff_only(self.path, self.origin, branch_name),
            f"pull --ff-only {self.origin} {branch_name}",
        )

    def force_push(self, name: str) -> None:
        self._check(remote.push_force(self.path, self.origin, name), f"push --force {name}")

    def push_ref(self, sha: str, branch_name: str) -> None:
        self._check(
            remote.push_ref(self.path, self.origin, sha, branch_name),
            f"push --force {sha[:8]}:{branch_name}",
        )
