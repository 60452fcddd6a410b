"""Git operations for the quest engine.

Return type conventions for the function modules:
- Functions returning GitResult: Caller must check .success before using output.
  Examples: create_branch(), cherry_pick(), fetch(), push_force()
- Functions returning bool: True on success/condition met, False otherwise.
  Examples: ref_exists(), is_ancestor(), has_remote()
- Functions returning parsed values (str, int, list): Return empty/zero on failure.
  Examples: get_untracked_files() -> [], get_commit_count() -> 0

GitRepo (repo.py) wraps them for the engine and raises RepositoryError instead.
"""

from repoquest.git.repo import GitRepo, classify_failure
from repoquest.git.runner import GitResult, run_git

__all__ = [
    "GitRepo",
    "GitResult",
    "classify_failure",
    "run_git",
]
