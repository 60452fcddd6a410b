"""
Quest session: one engine bound to one learner repository.

A session owns the serialization rules:
- one mutating action at a time, in-process (SessionLock) and across
  processes (flock on .git/rqst.lock); a second one fails with SessionBusy
- state queries and refreshes share the session and wait out a running action

Usage:
    session = QuestSession.open(Path("."))
    session.state()
    session.file_feature_and_issue(0)
"""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path

from repoquest.git.repo import GitRepo
from repoquest.lib.config import EngineSettings, load_settings
from repoquest.lib.errors import ForgeError, QuestError
from repoquest.lib.github import GithubForge, parse_remote_url
from repoquest.lib.locking import SessionLock, repo_lock
from repoquest.lib.retry import RetryingForge
from repoquest.quest.definition import QuestDefinition, load_quest, load_quest_from_repo
from repoquest.quest.state import StateDescriptor
from repoquest.workflow.executor import (
    ACTION_ADVANCE,
    ACTION_RESET,
    ACTION_SOLUTION,
    ActionExecutor,
    ActionResult,
)
from repoquest.workflow.notifier import ChangeNotifier, Subscription
from repoquest.workflow.reconcile import reconcile

logger = logging.getLogger(__name__)


def _forge_owner(repo: GitRepo, settings: EngineSettings) -> str:
    if settings.forge_owner:
        return settings.forge_owner
    url = repo.remote_url(settings.origin_remote)
    parsed = parse_remote_url(url) if url else None
    if parsed is None:
        raise QuestError(
            f"Cannot tell the GitHub owner from remote '{settings.origin_remote}'",
            cause="set forge_owner in the settings file",
        )
    return parsed[0]


def _github(owner: str, repo_name: str, settings: EngineSettings) -> RetryingForge:
    return RetryingForge(
        GithubForge(owner, repo_name, timeout=settings.gh_timeout),
        attempts=settings.retry_attempts,
        base_delay=settings.retry_base_delay,
        max_delay=settings.retry_max_delay,
    )


class QuestSession:
    """Engine instance for one working directory."""

    def __init__(
        self,
        quest: QuestDefinition,
        repo,
        forge,
        settings: EngineSettings | None = None,
        process_lock: bool = True,
        reference=None,
    ):
        self.quest = quest
        self.repo = repo
        self.forge = forge
        self.settings = settings or EngineSettings()
        self.notifier = ChangeNotifier(self.settings.subscriber_queue_size)
        self.executor = ActionExecutor(
            quest, repo, forge, self.settings, self.notifier, reference=reference
        )
        self.process_lock = process_lock
        self._lock = SessionLock()

    @classmethod
    def open(
        cls,
        directory: Path,
        settings: EngineSettings | None = None,
        quest_path: Path | None = None,
        forge=None,
    ) -> "QuestSession":
        """
        Build a session for a learner repository.

        The quest package comes from quest_path if given, else from rqst.yaml
        on the meta branch. The forge defaults to GitHub via gh, with retries,
        and then the quest author's repository is the source of review comments.
        """
        settings = settings or load_settings()
        repo = GitRepo(Path(directory), origin=settings.origin_remote)
        # Surfaces NOT_A_REPO before anything else
        repo.current_head()

        if quest_path is not None:
            quest = load_quest(quest_path)
        else:
            if repo.has_remote(settings.origin_remote):
                repo.fetch(settings.origin_remote)
            quest = load_quest_from_repo(repo, settings.meta_branch, settings.origin_remote)

        if settings.install_hooks:
            repo.install_hooks()

        reference = None
        if forge is None:
            forge = _github(_forge_owner(repo, settings), quest.repo, settings)
            if settings.copy_review_comments:
                reference = _github(quest.author, quest.repo, settings)

        logger.info(f"[SESSION] '{quest.title}' in {repo.path} via {forge!r}")
        return cls(quest, repo, forge, settings, reference=reference)

    @property
    def busy(self) -> bool:
        return self._lock.busy

    @contextmanager
    def _mutation(self, action: str):
        with self._lock.exclusive(action):
            if self.process_lock:
                with repo_lock(self.repo.path, action):
                    yield
            else:
                yield

    # --- reads -----------------------------------------------------------

    def state(self) -> StateDescriptor:
        """Reconcile without fetching or publishing."""
        with self._lock.shared():
            return reconcile(self.quest, self.repo, self.forge, self.settings).descriptor

    def refresh(self) -> StateDescriptor:
        with self._lock.shared():
            return self.executor.refresh()

    def subscribe(self, replay_latest: bool = True) -> Subscription:
        return self.notifier.subscribe(replay_latest=replay_latest)

    # --- actions ---------------------------------------------------------

    def file_feature_and_issue(self, stage_index: int) -> ActionResult:
        with self._mutation(ACTION_ADVANCE):
            return self.executor.file_feature_and_issue(stage_index)

    def file_solution(self, stage_index: int) -> ActionResult:
        with self._mutation(ACTION_SOLUTION):
            return self.executor.file_solution(stage_index)

    def hard_reset(self, target_stage: int) -> ActionResult:
        with self._mutation(ACTION_RESET):
            return self.executor.hard_reset(target_stage)

    # --- polling ---------------------------------------------------------

    def watch(self, stop: threading.Event, interval: float | None = None) -> None:
        """
        Refresh every `interval` seconds until `stop` is set.

        Forge errors that survived their retries are logged and the loop goes
        on; anything else ends the loop.
        """
        interval = self.settings.poll_interval if interval is None else interval
        while not stop.is_set():
            try:
                self.refresh()
            except ForgeError as e:
                if not e.retryable:
                    raise
                if e.exhausted:
                    logger.warning(f"[WATCH] GitHub still failing after retries, polling again in {interval}s: {e}")
                else:
                    logger.warning(f"[WATCH] Refresh failed, polling again in {interval}s: {e}")
            stop.wait(interval)
