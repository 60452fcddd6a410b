"""Quest progress state machine using transitions library.

Progress is always derived from the forge, never stored, so this machine is
not a source of truth. It is the table of legal moves:
- which action may run in the current part/status (executor preconditions)
- which trigger explains a change between two reconciled snapshots (logging,
  and a warning when the learner moved things in an unexpected way)

Usage:
    from repoquest.workflow.fsm import ProgressFSM

    fsm = ProgressFSM(progress, has_starter=True)
    fsm.can("file_feature_and_issue")
"""

import logging

from transitions import Machine

from repoquest.quest.stage import StagePart, StagePartStatus
from repoquest.quest.state import Completed, Ongoing, QuestProgress

logger = logging.getLogger(__name__)


STATES = [
    "starter_start",
    "starter_waiting",
    "solution_start",
    "solution_waiting",
    "completed",
]

# Same-stage moves; stage_completed also covers the hop to the next stage.
# Self-loops never show up in TRIGGER_FOR lookups (equal snapshots are "unchanged").
TRANSITIONS = [
    # Advance stage: issue + starter PR, or issue only when there is no starter
    {"trigger": "file_feature_and_issue", "source": "starter_start", "dest": "starter_waiting",
     "conditions": "has_starter"},
    {"trigger": "file_feature_and_issue", "source": "starter_start", "dest": "solution_start",
     "unless": "has_starter"},

    # Re-running an action whose artifacts already exist is a no-op
    {"trigger": "file_feature_and_issue", "source": "starter_waiting", "dest": "starter_waiting"},
    {"trigger": "file_feature_and_issue", "source": "solution_start", "dest": "solution_start",
     "unless": "has_starter"},
    {"trigger": "file_feature_and_issue", "source": "solution_waiting", "dest": "solution_waiting",
     "unless": "has_starter"},
    {"trigger": "file_solution", "source": "solution_waiting", "dest": "solution_waiting"},

    # Learner merges the starter PR on the forge
    {"trigger": "starter_merged", "source": "starter_waiting", "dest": "solution_start"},

    # Learner asks for the reference solution
    {"trigger": "file_solution", "source": "solution_start", "dest": "solution_waiting"},
    {"trigger": "solution_merged", "source": "solution_waiting", "dest": "solution_start"},

    # Issue closed (and any solution PR merged)
    {"trigger": "stage_completed", "source": "solution_start", "dest": "starter_start"},
    {"trigger": "stage_completed", "source": "solution_waiting", "dest": "starter_start"},
    {"trigger": "quest_completed", "source": "solution_start", "dest": "completed"},
    {"trigger": "quest_completed", "source": "solution_waiting", "dest": "completed"},

    # Hard reset keeps stage/part and returns to Start
    {"trigger": "hard_reset", "source": "starter_start", "dest": "starter_start"},
    {"trigger": "hard_reset", "source": "starter_waiting", "dest": "starter_start"},
    {"trigger": "hard_reset", "source": "solution_start", "dest": "solution_start"},
    {"trigger": "hard_reset", "source": "solution_waiting", "dest": "solution_start"},
]


def _build_trigger_lookup() -> dict[tuple[str, str], str]:
    """Build lookup from (source, dest) -> trigger name."""
    lookup: dict[tuple[str, str], str] = {}
    for t in TRANSITIONS:
        key = (t["source"], t["dest"])
        if key not in lookup:  # First trigger wins for a given source->dest
            lookup[key] = t["trigger"]
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


def state_name(progress: QuestProgress) -> str:
    """Map a progress value to its FSM state."""
    if isinstance(progress, Completed):
        return "completed"
    if isinstance(progress, Ongoing):
        part = "starter" if progress.part is StagePart.STARTER else "solution"
        status = "start" if progress.status is StagePartStatus.START else "waiting"
        return f"{part}_{status}"
    raise TypeError(f"Unknown progress value: {progress!r}")


class ProgressFSM:
    """Legal moves from one reconciled progress value."""

    def __init__(self, progress: QuestProgress, has_starter: bool = True):
        self.progress = progress
        self._has_starter = has_starter
        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=state_name(progress),
            auto_transitions=False,  # Only explicit transitions
        )

    def has_starter(self) -> bool:
        return self._has_starter

    def can(self, trigger: str) -> bool:
        """Check if a trigger can be executed in current state, guards included."""
        for t in TRANSITIONS:
            if t["trigger"] != trigger or t["source"] != self.state:
                continue
            if "conditions" in t and not getattr(self, t["conditions"])():
                continue
            if "unless" in t and getattr(self, t["unless"])():
                continue
            return True
        return False


def explain_transition(old: QuestProgress, new: QuestProgress) -> str | None:
    """
    Name the trigger that moves old to new, or None if no single move does.

    Equal values return "unchanged".
    """
    if old == new:
        return "unchanged"

    src, dst = state_name(old), state_name(new)

    if isinstance(old, Ongoing) and isinstance(new, Ongoing):
        if new.stage == old.stage:
            return TRIGGER_FOR.get((src, dst))
        if new.stage == old.stage + 1:
            return TRIGGER_FOR.get((src, dst)) if dst == "starter_start" else None
        return None

    if isinstance(old, Ongoing) and isinstance(new, Completed):
        return TRIGGER_FOR.get((src, dst))

    return None
