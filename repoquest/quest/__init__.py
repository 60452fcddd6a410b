"""Quest definitions and progress values."""

from repoquest.quest.definition import (
    QuestDefinition,
    load_quest,
    load_quest_from_repo,
    parse_quest,
)
from repoquest.quest.stage import StageDefinition, StagePart, StagePartStatus, Template
from repoquest.quest.state import (
    Completed,
    Ongoing,
    QuestProgress,
    StageRuntime,
    StateDescriptor,
)

__all__ = [
    "QuestDefinition",
    "load_quest",
    "load_quest_from_repo",
    "parse_quest",
    "StageDefinition",
    "StagePart",
    "StagePartStatus",
    "Template",
    "Completed",
    "Ongoing",
    "QuestProgress",
    "StageRuntime",
    "StateDescriptor",
]
