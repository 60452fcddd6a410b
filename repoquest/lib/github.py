"""
GitHub forge client.

Talks to the GitHub REST API through the gh CLI (`gh api`), so credentials are
whatever `gh auth login` set up. Artifacts are identified by naming
convention, never by cached ids:

- a stage's issue carries the stage label as a GitHub label
- its starter/solution PRs use head branches "<label>-a" / "<label>-b"
- reset PRs use head branch "rqst-reset/<label>-<sha8>" and the "reset" label
"""

import json
import logging
import re
import subprocess
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from repoquest.lib.errors import ForgeError, ForgeErrorKind
from repoquest.quest.stage import StagePart

logger = logging.getLogger(__name__)


# Timeout for GitHub CLI operations (seconds)
GH_TIMEOUT_SECONDS = 30

RESET_LABEL = "reset"
SKIPPED_LABEL = "skipped"
REFERENCE_SOLUTION_LABEL = "reference-solution"
RESET_BRANCH_PREFIX = "rqst-reset/"

_HTTP_STATUS_RE = re.compile(r"HTTP (\d{3})")
_REMOTE_URL_RE = re.compile(r"github\.com[:/]([^/]+)/([^/]+?)(?:\.git)?/?$")


@dataclass(frozen=True)
class Issue:
    number: int
    title: str
    url: str
    closed: bool
    labels: tuple[str, ...] = ()

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Issue":
        return cls(
            number=data["number"],
            title=data.get("title", ""),
            url=data.get("html_url", ""),
            closed=data.get("state") == "closed",
            labels=tuple(label["name"] for label in data.get("labels") or []),
        )


@dataclass(frozen=True)
class ReviewComment:
    """A line comment on a pull request's diff."""
    path: str
    body: str
    line: int | None = None  # None once the comment is outdated

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "ReviewComment":
        return cls(path=data.get("path", ""), body=data.get("body", ""), line=data.get("line"))


@dataclass(frozen=True)
class PullRequest:
    number: int
    title: str
    url: str
    head: str
    base: str
    merged: bool
    closed: bool
    labels: tuple[str, ...] = ()

    @property
    def abandoned(self) -> bool:
        """Closed without merging: treated as if it never existed."""
        return self.closed and not self.merged

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "PullRequest":
        return cls(
            number=data["number"],
            title=data.get("title", ""),
            url=data.get("html_url", ""),
            head=(data.get("head") or {}).get("ref", ""),
            base=(data.get("base") or {}).get("ref", ""),
            merged=bool(data.get("merged_at")) or bool(data.get("merged")),
            closed=data.get("state") == "closed",
            labels=tuple(label["name"] for label in data.get("labels") or []),
        )


def classify_gh_error(stderr: str, timed_out: bool = False) -> ForgeErrorKind:
    """Map gh's stderr onto a ForgeError kind."""
    if timed_out:
        return ForgeErrorKind.TRANSIENT_NETWORK

    lowered = stderr.lower()
    if "rate limit" in lowered:
        return ForgeErrorKind.RATE_LIMITED

    match = _HTTP_STATUS_RE.search(stderr)
    if match:
        code = int(match.group(1))
        if code == 429:
            return ForgeErrorKind.RATE_LIMITED
        if code in (401, 403):
            return ForgeErrorKind.UNAUTHORIZED
        if code in (404, 410):
            return ForgeErrorKind.NOT_FOUND
        if code >= 500:
            return ForgeErrorKind.TRANSIENT_NETWORK
        return ForgeErrorKind.INVALID_REQUEST

    if "gh auth login" in lowered or "authentication" in lowered or "bad credentials" in lowered:
        return ForgeErrorKind.UNAUTHORIZED
    # No HTTP status at all: the request never completed
    return ForgeErrorKind.TRANSIENT_NETWORK


def check_gh_available() -> tuple[bool, str]:
    """Check gh CLI is installed and authenticated.

    Returns: (ok, error_message)
    """
    try:
        result = subprocess.run(
            ["gh", "--version"],
            capture_output=True,
            timeout=5,
        )
        if result.returncode != 0:
            return False, "GitHub CLI (gh) not installed\n  Install: https://cli.github.com/"

        result = subprocess.run(
            ["gh", "auth", "status"],
            capture_output=True,
            text=True,
            timeout=10,
        )
        if result.returncode != 0:
            return False, "GitHub CLI not authenticated\n  Run: gh auth login"

        return True, ""

    except FileNotFoundError:
        return False, "GitHub CLI (gh) not found\n  Install: https://cli.github.com/"
    except subprocess.TimeoutExpired:
        return False, "GitHub CLI timed out"


def parse_remote_url(url: str) -> tuple[str, str] | None:
    """Extract (owner, repo) from an https or ssh GitHub remote URL."""
    match = _REMOTE_URL_RE.search(url.strip())
    if not match:
        return None
    return match.group(1), match.group(2)


def reset_branch_name(label: str, prior_sha: str) -> str:
    return f"{RESET_BRANCH_PREFIX}{label}-{prior_sha[:8]}"


class GithubForge:
    """Forge client for one GitHub repository."""

    def __init__(self, owner: str, repo: str, timeout: int = GH_TIMEOUT_SECONDS):
        self.owner = owner
        self.repo = repo
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"GithubForge({self.owner}/{self.repo})"

    @property
    def _base(self) -> str:
        return f"repos/{self.owner}/{self.repo}"

    def _api(
        self,
        endpoint: str,
        method: str = "GET",
        fields: list[tuple[str, str]] | None = None,
        paginate: bool = False,
        typed_fields: list[tuple[str, str]] | None = None,
    ) -> Any:
        """Run `gh api` and return parsed JSON.

        fields are sent as strings (-f); typed_fields go through -F so numbers
        and booleans keep their JSON type. Paginated calls return a flat list
        (one item per line via --jq).
        """
        cmd = ["gh", "api", endpoint, "--method", method]
        for key, value in fields or []:
            cmd += ["-f", f"{key}={value}"]
        for key, value in typed_fields or []:
            cmd += ["-F", f"{key}={value}"]
        if paginate:
            cmd += ["--paginate", "--jq", ".[]"]

        logger.debug(f"[FORGE] {method} {endpoint}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise ForgeError(
                ForgeErrorKind.TRANSIENT_NETWORK,
                f"GitHub API timeout after {self.timeout}s",
                cause=f"{method} {endpoint}",
            ) from None
        except FileNotFoundError:
            raise ForgeError(
                ForgeErrorKind.UNAUTHORIZED,
                "GitHub CLI (gh) not found",
                cause="Install: https://cli.github.com/",
            ) from None

        if result.returncode != 0:
            stderr = result.stderr.strip()
            raise ForgeError(
                classify_gh_error(stderr),
                f"{method} {endpoint} failed",
                cause=stderr.splitlines()[-1] if stderr else None,
            )

        try:
            if paginate:
                return [json.loads(line) for line in result.stdout.splitlines() if line.strip()]
            return json.loads(result.stdout) if result.stdout.strip() else None
        except json.JSONDecodeError:
            raise ForgeError(
                ForgeErrorKind.TRANSIENT_NETWORK,
                "Invalid JSON from gh",
                cause=f"{method} {endpoint}",
            ) from None

    # --- issues ----------------------------------------------------------

    def find_issue(self, label: str) -> Issue | None:
        """Newest issue (not PR) carrying the stage label."""
        try:
            items = self._api(
                f"{self._base}/issues?state=all&labels={quote(label)}&per_page=100",
                paginate=True,
            )
        except ForgeError as e:
            if e.kind is ForgeErrorKind.NOT_FOUND:
                return None
            raise
        issues = [Issue.from_api(i) for i in items if "pull_request" not in i]
        issues = [i for i in issues if label in i.labels]
        if not issues:
            return None
        return max(issues, key=lambda i: i.number)

    def create_issue(self, label: str, title: str, body: str) -> Issue:
        data = self._api(
            f"{self._base}/issues",
            method="POST",
            fields=[("title", title), ("body", body), ("labels[]", label)],
        )
        issue = Issue.from_api(data)
        logger.info(f"[FORGE] Created issue #{issue.number} for '{label}'")
        return issue

    def is_issue_closed(self, issue: Issue) -> bool:
        data = self._api(f"{self._base}/issues/{issue.number}")
        return data.get("state") == "closed"

    def close_issue(self, issue: Issue) -> None:
        self._api(
            f"{self._base}/issues/{issue.number}",
            method="PATCH",
            fields=[("state", "closed")],
        )
        logger.info(f"[FORGE] Closed issue #{issue.number}")

    def add_labels(self, number: int, labels: list[str]) -> None:
        if not labels:
            return
        self._api(
            f"{self._base}/issues/{number}/labels",
            method="POST",
            fields=[("labels[]", label) for label in labels],
        )

    # --- pull requests ---------------------------------------------------

    def find_pull_request_for_branch(self, branch: str) -> PullRequest | None:
        """Newest open or merged PR whose head is branch. Abandoned PRs are skipped."""
        try:
            items = self._api(
                f"{self._base}/pulls?state=all&head={quote(self.owner)}:{quote(branch, safe='')}"
                "&per_page=100",
                paginate=True,
            )
        except ForgeError as e:
            if e.kind is ForgeErrorKind.NOT_FOUND:
                return None
            raise
        prs = [PullRequest.from_api(p) for p in items]
        live = [p for p in prs if p.head == branch and not p.abandoned]
        if not live:
            return None
        return max(live, key=lambda p: p.number)

    def find_pull_request(self, label: str, part: StagePart) -> PullRequest | None:
        return self.find_pull_request_for_branch(f"{label}-{part.value}")

    def create_pull_request(
        self,
        branch: str,
        base: str,
        title: str,
        body: str,
        labels: tuple[str, ...] = (),
    ) -> PullRequest:
        data = self._api(
            f"{self._base}/pulls",
            method="POST",
            fields=[("title", title), ("head", branch), ("base", base), ("body", body)],
        )
        pr = PullRequest.from_api(data)
        if labels:
            self.add_labels(pr.number, list(labels))
            pr = PullRequest(
                number=pr.number, title=pr.title, url=pr.url, head=pr.head, base=pr.base,
                merged=pr.merged, closed=pr.closed, labels=tuple(labels),
            )
        logger.info(f"[FORGE] Created PR #{pr.number} {branch} -> {base}")
        return pr

    def is_pr_merged(self, pr: PullRequest) -> bool:
        data = self._api(f"{self._base}/pulls/{pr.number}")
        return bool(data.get("merged_at")) or bool(data.get("merged"))

    def close_pull_request(self, pr: PullRequest) -> None:
        self._api(
            f"{self._base}/pulls/{pr.number}",
            method="PATCH",
            fields=[("state", "closed")],
        )
        logger.info(f"[FORGE] Closed PR #{pr.number}")

    # --- review comments -------------------------------------------------

    def list_review_comments(self, number: int) -> list[ReviewComment]:
        items = self._api(f"{self._base}/pulls/{number}/comments?per_page=100", paginate=True)
        return [ReviewComment.from_api(c) for c in items]

    def create_review_comment(self, number: int, commit: str, comment: ReviewComment) -> None:
        """Post `comment` on PR `number`, anchored to `commit`."""
        fields = [("body", comment.body), ("commit_id", commit), ("path", comment.path)]
        typed_fields = []
        if comment.line is None:
            fields.append(("subject_type", "file"))
        else:
            typed_fields.append(("line", str(comment.line)))
        self._api(
            f"{self._base}/pulls/{number}/comments",
            method="POST",
            fields=fields,
            typed_fields=typed_fields,
        )
