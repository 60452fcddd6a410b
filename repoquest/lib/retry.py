"""
Retry wrapper for forge clients.

RetryingForge exposes the same methods as GithubForge and retries the
retryable ForgeError kinds (rate limits, transient network failures) with
capped exponential backoff. Fatal kinds propagate on the first attempt.
The reconciler and executor never see the retry loop.
"""

import functools
import logging
import time
from typing import Callable

from repoquest.lib.errors import ForgeError

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 5
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0


def backoff_delays(attempts: int, base_delay: float, max_delay: float) -> list[float]:
    """Delays slept between attempts: base, 2*base, 4*base... capped at max_delay."""
    return [min(base_delay * (2 ** n), max_delay) for n in range(max(attempts - 1, 0))]


def with_retry(
    attempts: int = DEFAULT_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    sleep: Callable[[float], None] = time.sleep,
):
    """Decorator retrying retryable ForgeErrors."""

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            delays = backoff_delays(attempts, base_delay, max_delay)
            attempt = 0
            while True:
                attempt += 1
                try:
                    return fn(*args, **kwargs)
                except ForgeError as e:
                    if not e.retryable:
                        raise
                    if attempt >= attempts:
                        logger.warning(
                            f"[RETRY] {fn.__name__}: giving up after {attempt} attempts ({e.kind.value})"
                        )
                        e.exhausted = True
                        raise
                    delay = delays[attempt - 1]
                    logger.info(
                        f"[RETRY] {fn.__name__}: {e.kind.value}, attempt {attempt}/{attempts}, "
                        f"retrying in {delay:.1f}s"
                    )
                    sleep(delay)

        return wrapper

    return decorator


class RetryingForge:
    """Forge client decorator adding bounded retries to every call."""

    def __init__(
        self,
        inner,
        attempts: int = DEFAULT_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.inner = inner
        self._retry = with_retry(attempts, base_delay, max_delay, sleep)

    def __repr__(self) -> str:
        return f"RetryingForge({self.inner!r})"

    def _call(self, name: str, *args, **kwargs):
        return self._retry(getattr(self.inner, name))(*args, **kwargs)

    def find_issue(self, label):
        return self._call("find_issue", label)

    def create_issue(self, label, title, body):
        # A create that timed out may still have landed; look before re-creating
        sent = False

        def create_issue():
            nonlocal sent
            if sent:
                existing = self.inner.find_issue(label)
                if existing is not None:
                    return existing
            sent = True
            return self.inner.create_issue(label, title, body)

        return self._retry(create_issue)()

    def is_issue_closed(self, issue):
        return self._call("is_issue_closed", issue)

    def close_issue(self, issue):
        return self._call("close_issue", issue)

    def add_labels(self, number, labels):
        return self._call("add_labels", number, labels)

    def find_pull_request(self, label, part):
        return self._call("find_pull_request", label, part)

    def find_pull_request_for_branch(self, branch):
        return self._call("find_pull_request_for_branch", branch)

    def create_pull_request(self, branch, base, title, body, labels=()):
        sent = False

        def create_pull_request():
            nonlocal sent
            if sent:
                existing = self.inner.find_pull_request_for_branch(branch)
                if existing is not None:
                    return existing
            sent = True
            return self.inner.create_pull_request(branch, base, title, body, labels)

        return self._retry(create_pull_request)()

    def is_pr_merged(self, pr):
        return self._call("is_pr_merged", pr)

    def close_pull_request(self, pr):
        return self._call("close_pull_request", pr)

    def list_review_comments(self, number):
        return self._call("list_review_comments", number)

    def create_review_comment(self, number, commit, comment):
        # Not retried: a comment that landed before a timeout cannot be looked up
        return self.inner.create_review_comment(number, commit, comment)
