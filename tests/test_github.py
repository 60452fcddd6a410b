"""Tests for repoquest.lib.github module."""

import json
import subprocess
from unittest.mock import patch, MagicMock

import pytest

from repoquest.lib.errors import ForgeError, ForgeErrorKind
from repoquest.lib.github import (
    GH_TIMEOUT_SECONDS,
    GithubForge,
    Issue,
    PullRequest,
    ReviewComment,
    check_gh_available,
    classify_gh_error,
    parse_remote_url,
    reset_branch_name,
)
from repoquest.quest.stage import StagePart


def gh_ok(payload):
    """CompletedProcess-like mock; lists are emitted one JSON value per line like --jq '.[]'."""
    if isinstance(payload, list):
        stdout = "\n".join(json.dumps(item) for item in payload)
    else:
        stdout = json.dumps(payload)
    return MagicMock(returncode=0, stdout=stdout, stderr="")


def gh_fail(stderr):
    return MagicMock(returncode=1, stdout="", stderr=stderr)


def issue_json(number, label, state="open", pull_request=False):
    data = {
        "number": number,
        "title": f"Issue {number}",
        "html_url": f"https://github.com/learner/quest/issues/{number}",
        "state": state,
        "labels": [{"name": label}],
    }
    if pull_request:
        data["pull_request"] = {"url": "..."}
    return data


def pr_json(number, head, state="open", merged_at=None):
    return {
        "number": number,
        "title": f"PR {number}",
        "html_url": f"https://github.com/learner/quest/pull/{number}",
        "state": state,
        "merged_at": merged_at,
        "head": {"ref": head},
        "base": {"ref": "main"},
        "labels": [],
    }


class TestConstants:
    """Test that constants are defined correctly."""

    def test_gh_timeout_is_reasonable(self):
        assert GH_TIMEOUT_SECONDS >= 10
        assert GH_TIMEOUT_SECONDS <= 120

    def test_reset_branch_name(self):
        assert reset_branch_name("intro", "0123456789abcdef") == "rqst-reset/intro-01234567"


class TestClassifyGhError:
    """gh stderr -> ForgeErrorKind."""

    @pytest.mark.parametrize("stderr,kind", [
        ("gh: API rate limit exceeded for user (HTTP 403)", ForgeErrorKind.RATE_LIMITED),
        ("gh: Too Many Requests (HTTP 429)", ForgeErrorKind.RATE_LIMITED),
        ("gh: Bad credentials (HTTP 401)", ForgeErrorKind.UNAUTHORIZED),
        ("gh: Resource not accessible by integration (HTTP 403)", ForgeErrorKind.UNAUTHORIZED),
        ("gh: Not Found (HTTP 404)", ForgeErrorKind.NOT_FOUND),
        ("gh: Server Error (HTTP 502)", ForgeErrorKind.TRANSIENT_NETWORK),
        ("gh: Validation Failed (HTTP 422)", ForgeErrorKind.INVALID_REQUEST),
        ("To get started with GitHub CLI, please run:  gh auth login", ForgeErrorKind.UNAUTHORIZED),
        ("dial tcp: lookup api.github.com: no such host", ForgeErrorKind.TRANSIENT_NETWORK),
    ])
    def test_kinds(self, stderr, kind):
        assert classify_gh_error(stderr) is kind

    def test_timeout_is_transient(self):
        assert classify_gh_error("", timed_out=True) is ForgeErrorKind.TRANSIENT_NETWORK


class TestParseRemoteUrl:

    @pytest.mark.parametrize("url", [
        "git@github.com:learner/quest.git",
        "https://github.com/learner/quest.git",
        "https://github.com/learner/quest",
        "ssh://git@github.com/learner/quest.git\n",
    ])
    def test_github_urls(self, url):
        assert parse_remote_url(url) == ("learner", "quest")

    def test_other_host(self):
        assert parse_remote_url("https://gitlab.com/learner/quest.git") is None


class TestCheckGhAvailable:
    """Test check_gh_available function."""

    @patch("repoquest.lib.github.subprocess.run")
    def test_available_and_authenticated(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0)
        assert check_gh_available() == (True, "")

    @patch("repoquest.lib.github.subprocess.run")
    def test_not_authenticated(self, mock_run):
        mock_run.side_effect = [MagicMock(returncode=0), MagicMock(returncode=1)]
        ok, message = check_gh_available()
        assert not ok
        assert "gh auth login" in message

    @patch("repoquest.lib.github.subprocess.run")
    def test_not_installed(self, mock_run):
        mock_run.side_effect = FileNotFoundError()
        ok, message = check_gh_available()
        assert not ok
        assert "not found" in message


class TestGithubForgeIssues:

    @patch("repoquest.lib.github.subprocess.run")
    def test_find_issue_skips_pull_requests(self, mock_run):
        mock_run.return_value = gh_ok([
            issue_json(3, "intro", pull_request=True),
            issue_json(2, "intro"),
            issue_json(1, "intro", state="closed"),
        ])
        issue = GithubForge("learner", "quest").find_issue("intro")
        assert issue.number == 2
        assert not issue.closed
        cmd = mock_run.call_args[0][0]
        assert cmd[:3] == ["gh", "api", "repos/learner/quest/issues?state=all&labels=intro&per_page=100"]
        assert "--paginate" in cmd

    @patch("repoquest.lib.github.subprocess.run")
    def test_find_issue_none(self, mock_run):
        mock_run.return_value = gh_ok([])
        assert GithubForge("learner", "quest").find_issue("intro") is None

    @patch("repoquest.lib.github.subprocess.run")
    def test_create_issue_sends_label(self, mock_run):
        mock_run.return_value = gh_ok(issue_json(7, "intro"))
        issue = GithubForge("learner", "quest").create_issue("intro", "Title", "Body")
        assert issue == Issue(7, "Issue 7", "https://github.com/learner/quest/issues/7", False, ("intro",))
        cmd = mock_run.call_args[0][0]
        assert "POST" in cmd
        assert "labels[]=intro" in cmd

    @patch("repoquest.lib.github.subprocess.run")
    def test_error_is_classified(self, mock_run):
        mock_run.return_value = gh_fail("gh: Bad credentials (HTTP 401)\n")
        with pytest.raises(ForgeError) as exc:
            GithubForge("learner", "quest").create_issue("intro", "T", "B")
        assert exc.value.kind is ForgeErrorKind.UNAUTHORIZED
        assert not exc.value.retryable

    @patch("repoquest.lib.github.subprocess.run")
    def test_timeout_is_retryable(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="gh", timeout=30)
        with pytest.raises(ForgeError) as exc:
            GithubForge("learner", "quest").is_issue_closed(Issue(1, "", "", False))
        assert exc.value.retryable

    @patch("repoquest.lib.github.subprocess.run")
    def test_invalid_json_is_transient(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="<html>", stderr="")
        with pytest.raises(ForgeError) as exc:
            GithubForge("learner", "quest").is_issue_closed(Issue(1, "", "", False))
        assert exc.value.kind is ForgeErrorKind.TRANSIENT_NETWORK


class TestGithubForgePullRequests:

    @patch("repoquest.lib.github.subprocess.run")
    def test_abandoned_prs_are_ignored(self, mock_run):
        mock_run.return_value = gh_ok([
            pr_json(5, "intro-a", state="closed"),
            pr_json(4, "intro-a", state="closed", merged_at="2024-01-01T00:00:00Z"),
        ])
        pr = GithubForge("learner", "quest").find_pull_request("intro", StagePart.STARTER)
        assert pr.number == 4
        assert pr.merged

    @patch("repoquest.lib.github.subprocess.run")
    def test_only_exact_head_matches(self, mock_run):
        mock_run.return_value = gh_ok([pr_json(9, "intro-ab")])
        assert GithubForge("learner", "quest").find_pull_request_for_branch("intro-a") is None

    @patch("repoquest.lib.github.subprocess.run")
    def test_create_pull_request_adds_labels(self, mock_run):
        mock_run.side_effect = [gh_ok(pr_json(11, "intro-b")), gh_ok([])]
        pr = GithubForge("learner", "quest").create_pull_request(
            "intro-b", "main", "Solution", "", ("intro", "reference-solution")
        )
        assert pr.labels == ("intro", "reference-solution")
        label_cmd = mock_run.call_args_list[1][0][0]
        assert label_cmd[2] == "repos/learner/quest/issues/11/labels"
        assert "labels[]=reference-solution" in label_cmd

    @patch("repoquest.lib.github.subprocess.run")
    def test_is_pr_merged(self, mock_run):
        mock_run.return_value = gh_ok(pr_json(4, "intro-a", state="closed", merged_at="2024-01-01"))
        pr = PullRequest(4, "", "", "intro-a", "main", False, False)
        assert GithubForge("learner", "quest").is_pr_merged(pr) is True


class TestGithubForgeReviewComments:

    @patch("repoquest.lib.github.subprocess.run")
    def test_list_review_comments(self, mock_run):
        mock_run.return_value = gh_ok([
            {"path": "src/parse.py", "body": "Start with the tokenizer", "line": 12},
            {"path": "README.md", "body": "Outdated", "line": None},
        ])
        comments = GithubForge("quest-author", "quest").list_review_comments(2)
        assert comments == [
            ReviewComment("src/parse.py", "Start with the tokenizer", 12),
            ReviewComment("README.md", "Outdated"),
        ]
        cmd = mock_run.call_args[0][0]
        assert cmd[2] == "repos/quest-author/quest/pulls/2/comments?per_page=100"
        assert "--paginate" in cmd

    @patch("repoquest.lib.github.subprocess.run")
    def test_line_comment_sends_line_as_number(self, mock_run):
        mock_run.return_value = gh_ok({"id": 1})
        comment = ReviewComment("src/parse.py", "Start here", 12)
        GithubForge("learner", "quest").create_review_comment(5, "abc123", comment)
        cmd = mock_run.call_args[0][0]
        assert cmd[2] == "repos/learner/quest/pulls/5/comments"
        assert cmd[cmd.index("-F") + 1] == "line=12"
        assert "commit_id=abc123" in cmd
        assert "path=src/parse.py" in cmd
        assert "subject_type=file" not in cmd

    @patch("repoquest.lib.github.subprocess.run")
    def test_comment_without_line_targets_file(self, mock_run):
        mock_run.return_value = gh_ok({"id": 1})
        GithubForge("learner", "quest").create_review_comment(5, "abc123", ReviewComment("README.md", "Read me"))
        cmd = mock_run.call_args[0][0]
        assert "subject_type=file" in cmd
        assert "-F" not in cmd
