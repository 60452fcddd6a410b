"""
Action executor.

Runs the learner-facing actions against the local repository and the forge:

    file_feature_and_issue(stage)  issue + starter branch/PR
    file_solution(stage)           reference solution branch/PR
    hard_reset(stage)              restore main to a reference baseline

Every step is find-or-create, so an action interrupted halfway is finished by
simply invoking it again. Progress is never stored: each action reconciles
before checking its preconditions and again before publishing the result.

Callers (QuestSession) hold the session lock; nothing here locks.
"""

import logging
import threading
from dataclasses import dataclass

from repoquest.lib.config import EngineSettings
from repoquest.lib.errors import (
    DivergenceDetected,
    ForgeError,
    PreconditionError,
    QuestError,
    RepoErrorKind,
    RepositoryError,
)
from repoquest.lib.github import (
    REFERENCE_SOLUTION_LABEL,
    RESET_LABEL,
    SKIPPED_LABEL,
    reset_branch_name,
)
from repoquest.quest.definition import QuestDefinition
from repoquest.quest.stage import StagePart
from repoquest.quest.state import Completed, Ongoing, QuestProgress, StateDescriptor
from repoquest.workflow.fsm import ProgressFSM, explain_transition
from repoquest.workflow.notifier import ChangeNotifier
from repoquest.workflow.reconcile import (
    Reconciliation,
    baseline_ref,
    reconcile,
    stage_start_ref,
)
from repoquest.workflow.templates import (
    SOLUTION_RESET_NOTE,
    STARTER_RESET_NOTE,
    issue_template,
    pr_template,
    render_body,
    reset_pr_body,
)

logger = logging.getLogger(__name__)

ACTION_ADVANCE = "file_feature_and_issue"
ACTION_SOLUTION = "file_solution"
ACTION_RESET = "hard_reset"
ACTION_REFRESH = "refresh"


@dataclass(frozen=True)
class ResetReport:
    """What a hard reset did."""
    stage: int
    baseline: str
    prior_head: str
    automatic: bool
    paths: tuple[str, ...] = ()
    reset_pr_url: str | None = None
    skipped: tuple[int, ...] = ()


@dataclass(frozen=True)
class ActionResult:
    action: str
    stage: int
    descriptor: StateDescriptor
    reset: ResetReport | None = None


class ActionExecutor:
    """Executes quest actions for one repository/forge pair."""

    def __init__(
        self,
        quest: QuestDefinition,
        repo,
        forge,
        settings: EngineSettings | None = None,
        notifier: ChangeNotifier | None = None,
        reference=None,
    ):
        self.quest = quest
        self.repo = repo
        self.forge = forge
        # The quest author's forge, source of review comments to copy
        self.reference = reference
        self.settings = settings or EngineSettings()
        self.notifier = notifier or ChangeNotifier(self.settings.subscriber_queue_size)
        self._fetch_lock = threading.Lock()
        self._last_progress: QuestProgress | None = None

    # --- public actions --------------------------------------------------

    def file_feature_and_issue(self, stage_index: int) -> ActionResult:
        """Open the stage's issue and, if it has one, its starter PR."""
        return self._run(ACTION_ADVANCE, stage_index, self._advance_steps)

    def file_solution(self, stage_index: int) -> ActionResult:
        """Open the stage's reference solution PR."""
        return self._run(ACTION_SOLUTION, stage_index, self._solution_steps)

    def hard_reset(self, target_stage: int) -> ActionResult:
        """
        Reset main to the reference state at the start of target_stage.

        target_stage may be the current stage (start the current part over)
        or a later one (skip ahead; the stages in between are closed and
        labelled "skipped"). Going backwards is refused.
        """
        try:
            self._sync_local(pull=False)
            recon = self._reconcile()
            progress = recon.progress

            if isinstance(progress, Completed):
                raise PreconditionError("Quest is already completed")
            if not 0 <= target_stage < len(self.quest.stages):
                raise PreconditionError(
                    f"No stage {target_stage} (quest has {len(self.quest.stages)})"
                )
            if target_stage < progress.stage:
                raise PreconditionError(
                    f"Cannot reset back to stage {target_stage} from stage {progress.stage}"
                )
            if not recon.descriptor.can_skip:
                raise PreconditionError(
                    f"No '{self.settings.upstream_remote}' remote with the reference solution"
                )

            if target_stage == progress.stage:
                part = progress.part
                reason = "reset requested by the learner"
            else:
                part = StagePart.STARTER
                reason = f"skip from stage {progress.stage} to stage {target_stage} requested by the learner"

            report = self._reset_steps(
                progress.stage,
                target_stage,
                part,
                reason=reason,
                automatic=False,
                paths=recon.diverged if target_stage == progress.stage else (),
            )
            descriptor = self._publish()
        except QuestError as e:
            raise e.with_context(ACTION_RESET, target_stage)

        return ActionResult(ACTION_RESET, target_stage, descriptor, reset=report)

    def refresh(self) -> StateDescriptor:
        """Fetch, reconcile and publish. Only touches remote-tracking refs."""
        try:
            self._fetch_remotes()
            return self._publish()
        except QuestError as e:
            raise e.with_context(ACTION_REFRESH)

    # --- action skeleton -------------------------------------------------

    def _run(self, action: str, stage_index: int, steps) -> ActionResult:
        report = None
        try:
            self._sync_local(pull=True)
            recon = self._reconcile()
            self._require(recon.progress, action, stage_index)
            try:
                self._ensure_consistent(recon, stage_index)
                steps(stage_index)
            except DivergenceDetected as d:
                logger.warning(f"[EXEC] {action}: {d.message}, resetting to {d.baseline}")
                progress = recon.progress
                report = self._reset_steps(
                    progress.stage,
                    progress.stage,
                    progress.part,
                    reason=f"reference-owned files were modified before {action}",
                    automatic=True,
                    paths=tuple(d.paths),
                )
            descriptor = self._publish()
        except QuestError as e:
            raise e.with_context(action, stage_index)

        return ActionResult(action, stage_index, descriptor, reset=report)

    def _require(self, progress: QuestProgress, action: str, stage_index: int) -> None:
        """Raise PreconditionError unless `action` is legal for stage_index now."""
        if not 0 <= stage_index < len(self.quest.stages):
            raise PreconditionError(f"No stage {stage_index} (quest has {len(self.quest.stages)})")
        if isinstance(progress, Completed):
            raise PreconditionError("Quest is already completed")
        if progress.stage != stage_index:
            raise PreconditionError(f"Quest is at {progress}, not stage {stage_index}")

        fsm = ProgressFSM(progress, has_starter=self.quest.stage(stage_index).has_starter)
        if not fsm.can(action):
            raise PreconditionError(f"Cannot {action} while at {progress}")

    def _ensure_consistent(self, recon: Reconciliation, stage_index: int) -> None:
        if recon.diverged:
            raise DivergenceDetected(list(recon.diverged), recon.baseline)
        if not self.repo.is_clean(self.quest.owned_through(stage_index)):
            raise RepositoryError(
                RepoErrorKind.DIRTY_TREE,
                "Working tree has uncommitted changes",
                cause="commit or stash them first",
            )

    # --- steps -----------------------------------------------------------

    def _advance_steps(self, stage_index: int) -> None:
        stage = self.quest.stage(stage_index)
        self._ensure_issue(stage_index)

        if not stage.has_starter:
            return

        if self.forge.find_pull_request(stage.label, StagePart.STARTER) is not None:
            logger.info(f"[EXEC] Starter PR for '{stage.label}' already exists")
            return

        branch = stage.branch_name(StagePart.STARTER)
        base = stage_start_ref(self.quest, stage_index, self.settings)
        target = self.settings.upstream_ref(branch)
        self._file_pull_request(stage_index, StagePart.STARTER, branch, base, target)

    def _solution_steps(self, stage_index: int) -> None:
        stage = self.quest.stage(stage_index)
        # Reconcile accepts a merged starter without the issue; the stage still
        # needs one to close
        self._ensure_issue(stage_index)

        if self.forge.find_pull_request(stage.label, StagePart.SOLUTION) is not None:
            logger.info(f"[EXEC] Solution PR for '{stage.label}' already exists")
            return

        branch = stage.branch_name(StagePart.SOLUTION)
        base = baseline_ref(self.quest, stage_index, StagePart.SOLUTION, self.settings)
        target = self.settings.upstream_ref(branch)
        self._file_pull_request(stage_index, StagePart.SOLUTION, branch, base, target)

    def _ensure_issue(self, stage_index: int):
        stage = self.quest.stage(stage_index)
        issue = self.forge.find_issue(stage.label)
        if issue is not None:
            logger.info(f"[EXEC] Issue #{issue.number} for '{stage.label}' already exists")
            return issue
        template = issue_template(stage)
        return self.forge.create_issue(
            stage.label, template.title, render_body(template.body, self.forge)
        )

    def _file_pull_request(self, stage_index: int, part: StagePart, branch: str,
                           base: str, target: str) -> None:
        stage = self.quest.stage(stage_index)

        clean = self._seed_branch(branch, base, target)
        self.repo.force_push(branch)

        template = pr_template(stage, part)
        body = render_body(template.body, self.forge)
        labels = [stage.label]
        if part is StagePart.SOLUTION:
            labels.append(REFERENCE_SOLUTION_LABEL)
        labels += [label for label in template.labels if label not in labels]
        if not clean:
            note = STARTER_RESET_NOTE if part is StagePart.STARTER else SOLUTION_RESET_NOTE
            body = f"{body}\n\n{note}" if body else note
            labels.append(RESET_LABEL)

        pr = self.forge.create_pull_request(
            branch, self.settings.main_branch, template.title, body, tuple(labels)
        )
        if self.reference is not None:
            self._copy_review_comments(branch, pr)

    def _copy_review_comments(self, branch: str, pr) -> None:
        """Post the author's review comments from their PR for `branch` onto ours."""
        try:
            source = self.reference.find_pull_request_for_branch(branch)
            if source is None:
                return
            comments = self.reference.list_review_comments(source.number)
            if not comments:
                return
            commit = self.repo.resolve(branch)
            for comment in comments:
                self.forge.create_review_comment(pr.number, commit, comment)
        except ForgeError as e:
            # The PR itself is filed; missing comments are not worth failing over
            logger.warning(f"[EXEC] Could not copy review comments onto PR #{pr.number}: {e}")
            return
        logger.info(f"[EXEC] Copied {len(comments)} review comment(s) onto PR #{pr.number}")

    def _seed_branch(self, branch: str, base: str, target: str) -> bool:
        """
        Point `branch` at local main plus the reference commits base..target.

        When the commits do not apply, the branch instead gets one commit on
        top of main whose tree is exactly `target`. Returns False in that case.
        Leaves main checked out.
        """
        main = self.settings.main_branch
        self.repo.create_branch_from(main, branch)
        try:
            start = self.repo.current_head()
            if self.repo.cherry_pick(base, target):
                return True

            logger.warning(f"[EXEC] {base}..{target} does not apply on {main}, overriding {branch}")
            self.repo.reset_hard_to(target)
            self.repo.reset_soft(start)
            self.repo.commit(f"Override with reference {target}")
            return False
        finally:
            self.repo.checkout(main)

    def _reset_steps(
        self,
        current_stage: int,
        target_stage: int,
        part: StagePart,
        reason: str,
        automatic: bool,
        paths: tuple[str, ...] = (),
    ) -> ResetReport:
        stage = self.quest.stage(target_stage)
        main = self.settings.main_branch

        if target_stage > current_stage:
            baseline = baseline_ref(self.quest, target_stage, StagePart.STARTER, self.settings)
        else:
            baseline = baseline_ref(self.quest, target_stage, part, self.settings)
        baseline_sha = self.repo.resolve(baseline)

        # Uncommitted edits are folded into the preserved tip. The audit branch
        # is named after HEAD, which is stable across retries, while the
        # snapshot commit is not.
        head = self.repo.current_head()
        prior = self.repo.snapshot()
        logger.info(f"[EXEC] Hard reset of {main} to {baseline} ({baseline_sha[:8]}), prior tip {prior[:8]}")

        # The prior tip reaches the remote before anything local is discarded
        reset_pr_url = None
        if prior != baseline_sha and not self.repo.is_ancestor(prior, baseline_sha):
            audit_branch = reset_branch_name(stage.label, head)
            self.repo.push_ref(prior, audit_branch)
            pr = self.forge.find_pull_request_for_branch(audit_branch)
            if pr is None:
                pr = self.forge.create_pull_request(
                    audit_branch,
                    main,
                    f"Reset to the start of stage {target_stage}: {stage.name}",
                    reset_pr_body(self.quest, target_stage, baseline, prior, reason, paths),
                    (RESET_LABEL,),
                )
            reset_pr_url = pr.url
        else:
            logger.info("[EXEC] Nothing to preserve, prior tip is part of the baseline")

        self.repo.reset_hard_to("HEAD")
        self.repo.checkout(main)
        self.repo.reset_hard_to(baseline_sha)
        self.repo.force_push(main)

        for index in range(current_stage, target_stage + 1):
            self._close_open_pull_requests(index)

        skipped = tuple(range(current_stage, target_stage))
        for index in skipped:
            self._mark_skipped(index)

        return ResetReport(
            stage=target_stage,
            baseline=baseline,
            prior_head=prior,
            automatic=automatic,
            paths=tuple(paths),
            reset_pr_url=reset_pr_url,
            skipped=skipped,
        )

    def _close_open_pull_requests(self, stage_index: int) -> None:
        stage = self.quest.stage(stage_index)
        for part in (StagePart.STARTER, StagePart.SOLUTION):
            pr = self.forge.find_pull_request(stage.label, part)
            if pr is None or self.forge.is_pr_merged(pr):
                continue
            self.forge.close_pull_request(pr)

    def _mark_skipped(self, stage_index: int) -> None:
        stage = self.quest.stage(stage_index)
        issue = self._ensure_issue(stage_index)
        if SKIPPED_LABEL not in issue.labels:
            self.forge.add_labels(issue.number, [SKIPPED_LABEL])
        if not self.forge.is_issue_closed(issue):
            self.forge.close_issue(issue)
        logger.info(f"[EXEC] Stage {stage_index} ({stage.label}) skipped")

    # --- sync / reconcile / publish --------------------------------------

    def _fetch_remotes(self) -> None:
        with self._fetch_lock:
            for name in (self.settings.origin_remote, self.settings.upstream_remote):
                if self.repo.has_remote(name):
                    self.repo.fetch(name)

    def _sync_local(self, pull: bool) -> None:
        self._fetch_remotes()
        if not pull:
            return
        main = self.settings.main_branch
        if self.repo.current_branch() != main:
            self.repo.checkout(main)
        if self.repo.has_remote(self.settings.origin_remote):
            self.repo.pull_ff_only(main)

    def _reconcile(self) -> Reconciliation:
        return reconcile(self.quest, self.repo, self.forge, self.settings)

    def _publish(self) -> StateDescriptor:
        descriptor = self._reconcile().descriptor
        self._log_transition(descriptor.progress)
        self.notifier.publish(descriptor)
        return descriptor

    def _log_transition(self, progress: QuestProgress) -> None:
        old, self._last_progress = self._last_progress, progress
        if old is None:
            logger.info(f"[STATE] {progress}")
            return
        trigger = explain_transition(old, progress)
        if trigger == "unchanged":
            return
        if trigger is None:
            logger.warning(f"[STATE] Unexpected jump {old} -> {progress}")
        else:
            logger.info(f"[STATE] {old} -> {progress} ({trigger})")
