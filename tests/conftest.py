"""Shared fakes: an in-memory git repository and forge."""

import itertools
from pathlib import Path

import pytest

from repoquest.lib.config import EngineSettings
from repoquest.lib.errors import ForgeError, ForgeErrorKind, RepoErrorKind, RepositoryError
from repoquest.lib.github import Issue, PullRequest, ReviewComment
from repoquest.quest.definition import parse_quest
from repoquest.quest.stage import matches_any


class FakeRepo:
    """Commit graph plus a working tree, with GitRepo's interface."""

    def __init__(self, path: Path = Path("/quest")):
        self.path = path
        self.commits: dict[str, tuple[dict, str | None]] = {}
        self.refs: dict[str, str] = {}
        self.branch: str | None = None
        self.worktree: dict[str, str] = {}
        self.remotes = {"origin": "git@github.com:learner/quest.git", "upstream": None}
        self.pushed: dict[str, str] = {}
        self.fetched: list[str] = []
        self.hooks_installed = 0
        self._ids = itertools.count(1)

    # --- test helpers ----------------------------------------------------

    def add_commit(self, tree: dict, parent: str | None = None, ref: str | None = None) -> str:
        sha = f"{next(self._ids):040x}"
        self.commits[sha] = (dict(tree), parent)
        if ref is not None:
            self.refs[ref] = sha
        return sha

    def tree(self, ref: str) -> dict:
        return dict(self.commits[self.resolve(ref)][0])

    def write(self, path: str, content: str) -> None:
        self.worktree[path] = content

    def commit_all(self, message: str = "learner work") -> str:
        return self.commit(message)

    # --- queries ---------------------------------------------------------

    def current_head(self) -> str:
        return self.refs[self.branch]

    def current_branch(self):
        return self.branch

    def resolve(self, ref: str) -> str:
        if ref == "HEAD":
            return self.current_head()
        if ref in self.refs:
            return self.refs[ref]
        if ref in self.commits:
            return ref
        raise RepositoryError(RepoErrorKind.REF_NOT_FOUND, f"git rev-parse {ref} failed")

    def ref_exists(self, ref: str) -> bool:
        return ref in self.refs or ref in self.commits

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        sha = self.resolve(descendant)
        while sha is not None:
            if sha == ancestor:
                return True
            sha = self.commits[sha][1]
        return False

    def has_remote(self, name: str) -> bool:
        return name in self.remotes

    def remote_url(self, name: str):
        return self.remotes.get(name)

    def show(self, ref: str, path: str) -> str:
        tree = self.tree(ref)
        if path not in tree:
            raise RepositoryError(RepoErrorKind.REF_NOT_FOUND, f"git show {ref}:{path} failed")
        return tree[path]

    def is_clean(self, owned=()) -> bool:
        head = self.tree("HEAD")
        for path in set(head) | set(self.worktree):
            if head.get(path) == self.worktree.get(path):
                continue
            if path not in head and not matches_any(path, owned):
                continue  # untracked outside owned paths
            return False
        return True

    def diff_owned_files(self, patterns, against: str) -> set:
        base = self.tree(against)
        changed = {p for p in set(base) | set(self.worktree) if base.get(p) != self.worktree.get(p)}
        return {p for p in changed if matches_any(p, patterns)}

    # --- local mutations -------------------------------------------------

    def create_branch_from(self, base_ref: str, name: str) -> None:
        self.refs[name] = self.resolve(base_ref)
        self.checkout(name)

    def checkout(self, name: str) -> None:
        if name not in self.refs:
            raise RepositoryError(RepoErrorKind.REF_NOT_FOUND, f"git checkout {name} failed")
        self.branch = name
        self.worktree = self.tree(name)

    def cherry_pick(self, base: str, target: str) -> bool:
        before, after = self.tree(base), self.tree(target)
        head = self.tree("HEAD")
        changed = {p for p in set(before) | set(after) if before.get(p) != after.get(p)}
        if not changed:
            return True
        for path in changed:
            if head.get(path) not in (before.get(path), after.get(path)):
                return False
        for path in changed:
            if path in after:
                head[path] = after[path]
            else:
                head.pop(path, None)
        self.refs[self.branch] = self.add_commit(head, self.current_head())
        self.worktree = dict(head)
        return True

    def commit(self, message: str) -> str:
        sha = self.add_commit(self.worktree, self.current_head())
        self.refs[self.branch] = sha
        return sha

    def snapshot(self) -> str:
        if self.worktree == self.tree("HEAD"):
            return self.current_head()
        return self.add_commit(self.worktree, self.current_head())

    def reset_soft(self, ref: str) -> None:
        self.refs[self.branch] = self.resolve(ref)

    def reset_hard_to(self, ref: str) -> None:
        sha = self.resolve(ref)
        self.refs[self.branch] = sha
        self.worktree = self.tree(sha)

    def install_hooks(self) -> bool:
        self.hooks_installed += 1
        return False

    # --- remote ----------------------------------------------------------

    def fetch(self, remote_name: str) -> None:
        self.fetched.append(remote_name)

    def pull_ff_only(self, branch_name: str) -> None:
        pass

    def force_push(self, name: str) -> None:
        self.pushed[name] = self.refs[name]

    def push_ref(self, sha: str, branch_name: str) -> None:
        self.pushed[branch_name] = sha


class FakeForge:
    """Issues and PRs in memory, with GithubForge's interface."""

    def __init__(self):
        self.issues: dict[int, dict] = {}
        self.prs: dict[int, dict] = {}
        self.review_comments: dict[int, list[ReviewComment]] = {}
        self.posted_comments: list[tuple[int, str, ReviewComment]] = []
        self.calls: list[str] = []
        self.failures: dict[str, list[Exception]] = {}
        self._numbers = itertools.count(1)

    # --- test helpers ----------------------------------------------------

    def fail(self, method: str, *errors: Exception) -> None:
        """Raise errors (in order) on the next calls to method."""
        self.failures.setdefault(method, []).extend(errors)

    def _enter(self, method: str) -> None:
        self.calls.append(method)
        pending = self.failures.get(method)
        if pending:
            raise pending.pop(0)

    def merge(self, pr: PullRequest) -> None:
        self.prs[pr.number]["merged"] = True
        self.prs[pr.number]["closed"] = True

    def close(self, label: str) -> None:
        issue = self.find_issue(label)
        self.issues[issue.number]["closed"] = True

    def count(self, method: str) -> int:
        return self.calls.count(method)

    def _issue(self, number: int) -> Issue:
        data = self.issues[number]
        return Issue(number, data["title"], f"https://github.com/learner/quest/issues/{number}",
                     data["closed"], tuple(data["labels"]))

    def _pr(self, number: int) -> PullRequest:
        data = self.prs[number]
        return PullRequest(number, data["title"], f"https://github.com/learner/quest/pull/{number}",
                           data["head"], data["base"], data["merged"], data["closed"],
                           tuple(data["labels"]))

    # --- issues ----------------------------------------------------------

    def find_issue(self, label):
        self._enter("find_issue")
        numbers = [n for n, d in self.issues.items() if label in d["labels"]]
        return self._issue(max(numbers)) if numbers else None

    def create_issue(self, label, title, body):
        self._enter("create_issue")
        number = next(self._numbers)
        self.issues[number] = {"title": title, "body": body, "closed": False, "labels": [label]}
        return self._issue(number)

    def is_issue_closed(self, issue):
        self._enter("is_issue_closed")
        return self.issues[issue.number]["closed"]

    def close_issue(self, issue):
        self._enter("close_issue")
        self.issues[issue.number]["closed"] = True

    def add_labels(self, number, labels):
        self._enter("add_labels")
        target = self.issues.get(number) or self.prs[number]
        target["labels"].extend(label for label in labels if label not in target["labels"])

    # --- pull requests ---------------------------------------------------

    def find_pull_request_for_branch(self, branch):
        self._enter("find_pull_request_for_branch")
        live = [
            n for n, d in self.prs.items()
            if d["head"] == branch and not (d["closed"] and not d["merged"])
        ]
        return self._pr(max(live)) if live else None

    def find_pull_request(self, label, part):
        return self.find_pull_request_for_branch(f"{label}-{part.value}")

    def create_pull_request(self, branch, base, title, body, labels=()):
        self._enter("create_pull_request")
        number = next(self._numbers)
        self.prs[number] = {
            "title": title, "body": body, "head": branch, "base": base,
            "merged": False, "closed": False, "labels": list(labels),
        }
        return self._pr(number)

    def is_pr_merged(self, pr):
        self._enter("is_pr_merged")
        return self.prs[pr.number]["merged"]

    def close_pull_request(self, pr):
        self._enter("close_pull_request")
        self.prs[pr.number]["closed"] = True

    def list_review_comments(self, number):
        self._enter("list_review_comments")
        return list(self.review_comments.get(number, []))

    def create_review_comment(self, number, commit, comment):
        self._enter("create_review_comment")
        self.posted_comments.append((number, commit, comment))


QUEST_DATA = {
    "version": "0.3.0",
    "title": "Build a Calculator",
    "author": "quest-author",
    "repo": "quest",
    "read-only": [".github/**"],
    "stages": [
        {
            "label": "parse",
            "name": "Parse expressions",
            "owned": ["tests/test_parse.py"],
            "issue": {"title": "Implement the parser", "body": "Start from {{ parse pr }}."},
            "starter-pr": {"title": "Parser scaffolding"},
            "solution-pr": {"title": "Parser solution", "url": "https://github.com/quest-author/quest/pull/2"},
        },
        {
            "label": "eval",
            "name": "Evaluate expressions",
            "owned": ["tests/test_eval.py"],
        },
        {
            "label": "polish",
            "name": "Polish",
            "no-starter": True,
        },
    ],
}


def build_upstream(repo: FakeRepo) -> None:
    """Reference history for QUEST_DATA on upstream/*, local main at upstream/main."""
    tree = {"README.md": "calculator", ".github/ci.yml": "ci"}
    main = repo.add_commit(tree, ref="upstream/main")

    tree.update({"tests/test_parse.py": "parse tests", "src/parse.py": "TODO"})
    parse_a = repo.add_commit(tree, main, ref="upstream/parse-a")
    tree["src/parse.py"] = "parser"
    parse_b = repo.add_commit(tree, parse_a, ref="upstream/parse-b")

    tree.update({"tests/test_eval.py": "eval tests", "src/eval.py": "TODO", "src/parse.py": "parser v2"})
    eval_a = repo.add_commit(tree, parse_b, ref="upstream/eval-a")
    tree["src/eval.py"] = "evaluator"
    eval_b = repo.add_commit(tree, eval_a, ref="upstream/eval-b")

    tree["README.md"] = "calculator, polished"
    repo.add_commit(tree, eval_b, ref="upstream/polish-b")

    repo.refs["main"] = main
    repo.checkout("main")


def merge_into_main(repo: FakeRepo, forge: FakeForge, pr: PullRequest) -> None:
    """What the learner does on GitHub followed by a pull."""
    forge.merge(pr)
    repo.refs["main"] = repo.pushed[pr.head]
    repo.checkout("main")


@pytest.fixture
def quest():
    return parse_quest(QUEST_DATA)


@pytest.fixture
def repo():
    repo = FakeRepo()
    build_upstream(repo)
    return repo


@pytest.fixture
def forge():
    return FakeForge()


@pytest.fixture
def settings():
    return EngineSettings()


def transient(message: str = "HTTP 502") -> ForgeError:
    return ForgeError(ForgeErrorKind.TRANSIENT_NETWORK, message)
