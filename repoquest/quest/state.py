"""
Progress values and the snapshot broadcast after every reconciliation.

QuestProgress is a closed sum type: either Ongoing(stage, part, status) or
Completed(). Consumers switch on it with isinstance and raise on anything else,
so a Completed value can never carry a stage index.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

from repoquest.quest.stage import StagePart, StagePartStatus


@dataclass(frozen=True)
class Ongoing:
    stage: int
    part: StagePart
    status: StagePartStatus

    def __post_init__(self):
        if self.stage < 0:
            raise ValueError(f"stage index must be non-negative, got {self.stage}")

    def __str__(self) -> str:
        return f"stage {self.stage} {self.part.name.lower()}/{self.status.value}"


@dataclass(frozen=True)
class Completed:
    def __str__(self) -> str:
        return "completed"


QuestProgress = Union[Ongoing, Completed]


def progress_to_dict(progress: QuestProgress) -> dict[str, Any]:
    if isinstance(progress, Ongoing):
        return {
            "type": "Ongoing",
            "stage": progress.stage,
            "part": progress.part.name.lower(),
            "status": progress.status.value,
        }
    if isinstance(progress, Completed):
        return {"type": "Completed"}
    raise TypeError(f"Unknown progress value: {progress!r}")


@dataclass(frozen=True)
class StageRuntime:
    """Forge artifacts observed for one stage. Never mutated by hand."""
    label: str
    issue_url: str | None = None
    starter_pr_url: str | None = None
    solution_pr_url: str | None = None
    reference_solution_pr_url: str | None = None


@dataclass(frozen=True)
class StateDescriptor:
    """Everything the presentation layer needs, as one immutable value."""
    dir: Path
    stages: tuple[StageRuntime, ...]
    progress: QuestProgress
    can_skip: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "dir": str(self.dir),
            "stages": [
                {
                    "label": s.label,
                    "issue_url": s.issue_url,
                    "starter_pr_url": s.starter_pr_url,
                    "solution_pr_url": s.solution_pr_url,
                    "reference_solution_pr_url": s.reference_solution_pr_url,
                }
                for s in self.stages
            ],
            "state": progress_to_dict(self.progress),
            "can_skip": self.can_skip,
        }
