"""
State reconciliation.

reconcile() derives the quest's progress from scratch out of two stores: the
forge's issues/PRs and the local working tree. It only reads. Divergence
(reference-owned files that differ from the baseline the engine would have
written) is reported on the result for the executor to act on; it is never
repaired here.

Walk, per stage in order, stopping at the first one not yet complete:
  1. A closed issue labelled "skipped" completes the stage (forward reset).
  2. Starter is satisfied when the starter PR is merged, or, for a stage
     without a starter, once the issue exists; otherwise Starter/Waiting if
     the starter PR is open, else Starter/Start.
  3. Solution is satisfied when the issue is closed and no solution PR was
     requested or it is merged; otherwise Solution/Waiting if the solution PR
     is open, else Solution/Start.
  4. The last stage satisfied means Completed.
"""

import logging
from dataclasses import dataclass, field

from repoquest.lib.config import EngineSettings
from repoquest.lib.errors import RepoErrorKind, RepositoryError
from repoquest.lib.github import SKIPPED_LABEL
from repoquest.quest.definition import QuestDefinition
from repoquest.quest.stage import StagePart, StagePartStatus
from repoquest.quest.state import (
    Completed,
    Ongoing,
    QuestProgress,
    StageRuntime,
    StateDescriptor,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reconciliation:
    """A StateDescriptor plus the internal divergence signal."""
    descriptor: StateDescriptor
    diverged: tuple[str, ...] = ()
    baseline: str | None = None

    @property
    def progress(self) -> QuestProgress:
        return self.descriptor.progress


def stage_start_ref(quest: QuestDefinition, index: int, settings: EngineSettings) -> str:
    """Reference commit a learner starts stage `index` from."""
    if index == 0:
        return settings.upstream_ref(settings.main_branch)
    previous = quest.stage(index - 1)
    return settings.upstream_ref(previous.branch_name(StagePart.SOLUTION))


def baseline_ref(
    quest: QuestDefinition,
    index: int,
    part: StagePart,
    settings: EngineSettings,
) -> str:
    """Reference commit the working tree should match at the start of a part."""
    stage = quest.stage(index)
    if part is StagePart.SOLUTION and stage.has_starter:
        return settings.upstream_ref(stage.branch_name(StagePart.STARTER))
    return stage_start_ref(quest, index, settings)


def _stage_runtime(stage, issue, starter_pr, solution_pr) -> StageRuntime:
    reference_url = None
    if solution_pr is not None and stage.solution_pr is not None:
        reference_url = stage.solution_pr.url
    return StageRuntime(
        label=stage.label,
        issue_url=issue.url if issue else None,
        starter_pr_url=starter_pr.url if starter_pr else None,
        solution_pr_url=solution_pr.url if solution_pr else None,
        reference_solution_pr_url=reference_url,
    )


def infer_progress(quest: QuestDefinition, forge) -> tuple[QuestProgress, tuple[StageRuntime, ...]]:
    """Walk the stages against the forge. Returns progress and runtimes 0..current."""
    runtimes: list[StageRuntime] = []

    for index, stage in enumerate(quest.stages):
        issue = forge.find_issue(stage.label)
        starter_pr = forge.find_pull_request(stage.label, StagePart.STARTER) if stage.has_starter else None
        solution_pr = forge.find_pull_request(stage.label, StagePart.SOLUTION)
        runtimes.append(_stage_runtime(stage, issue, starter_pr, solution_pr))

        issue_closed = issue is not None and forge.is_issue_closed(issue)

        if issue_closed and SKIPPED_LABEL in issue.labels:
            continue

        starter_merged = starter_pr is not None and forge.is_pr_merged(starter_pr)
        # A merged starter PR stands on its own: the issue may since have been
        # deleted or relabelled. Without a starter the issue is the whole part.
        starter_done = starter_merged if stage.has_starter else issue is not None
        if not starter_done:
            waiting = starter_pr is not None and not starter_merged
            status = StagePartStatus.WAITING if waiting else StagePartStatus.START
            return Ongoing(index, StagePart.STARTER, status), tuple(runtimes)

        solution_merged = solution_pr is not None and forge.is_pr_merged(solution_pr)
        solution_done = issue_closed and (solution_pr is None or solution_merged)
        if not solution_done:
            waiting = solution_pr is not None and not solution_merged
            status = StagePartStatus.WAITING if waiting else StagePartStatus.START
            return Ongoing(index, StagePart.SOLUTION, status), tuple(runtimes)

    return Completed(), tuple(runtimes)


def check_divergence(
    quest: QuestDefinition,
    repo,
    progress: QuestProgress,
    settings: EngineSettings,
) -> tuple[tuple[str, ...], str | None]:
    """Reference-owned paths that differ from the current part's baseline.

    Only meaningful at Start, where the local tree is about to be trusted as
    the base of the next action. Returns (paths, baseline).
    """
    if not isinstance(progress, Ongoing) or progress.status is not StagePartStatus.START:
        return (), None

    baseline = baseline_ref(quest, progress.stage, progress.part, settings)
    patterns = quest.owned_through(progress.stage)
    if not patterns:
        return (), baseline

    try:
        changed = repo.diff_owned_files(patterns, baseline)
    except RepositoryError as e:
        if e.kind is RepoErrorKind.REF_NOT_FOUND:
            logger.warning(f"[RECONCILE] Baseline {baseline} not available locally, skipping divergence check")
            return (), baseline
        raise

    return tuple(sorted(changed)), baseline


def reconcile(quest: QuestDefinition, repo, forge, settings: EngineSettings) -> Reconciliation:
    """Derive the full state of a quest. Side-effect free."""
    progress, runtimes = infer_progress(quest, forge)
    diverged, baseline = check_divergence(quest, repo, progress, settings)
    if diverged:
        logger.info(f"[RECONCILE] {len(diverged)} reference-owned file(s) diverge from {baseline}")

    descriptor = StateDescriptor(
        dir=repo.path,
        stages=runtimes,
        progress=progress,
        can_skip=repo.has_remote(settings.upstream_remote),
    )
    return Reconciliation(descriptor=descriptor, diverged=diverged, baseline=baseline)
