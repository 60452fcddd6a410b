"""Stage definitions and the parts/statuses a stage moves through."""

import fnmatch
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class StagePart(Enum):
    """The two halves of a stage. Values are the branch suffixes."""

    STARTER = "a"
    SOLUTION = "b"


class StagePartStatus(Enum):
    START = "start"
    WAITING = "waiting"


@dataclass(frozen=True)
class Template:
    """Opaque issue/PR prose forwarded verbatim to the forge."""
    title: str
    body: str = ""
    labels: tuple[str, ...] = ()
    url: str | None = None  # Upstream reference PR, shown once help is requested

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Template | None":
        if data is None:
            return None
        return cls(
            title=data["title"],
            body=data.get("body", ""),
            labels=tuple(data.get("labels", [])),
            url=data.get("url"),
        )


def is_directory_pattern(pattern: str) -> bool:
    return pattern.endswith("/**") or pattern.endswith("/")


def directory_prefix(pattern: str) -> str:
    """'src/engine/**' and 'src/engine/' both own everything under 'src/engine/'."""
    return pattern.rstrip("*").rstrip("/") + "/"


def path_matches(path: str, pattern: str) -> bool:
    """Match a repo-relative path against an ownership pattern.

    Directory patterns ("dir/**" or "dir/") own the whole subtree; anything
    else is an fnmatch glob over the full path.
    """
    if is_directory_pattern(pattern):
        return path.startswith(directory_prefix(pattern))
    return fnmatch.fnmatchcase(path, pattern)


def matches_any(path: str, patterns) -> bool:
    return any(path_matches(path, p) for p in patterns)


@dataclass(frozen=True)
class StageDefinition:
    """One chapter of a quest."""
    label: str
    name: str
    has_starter: bool = True
    owned: tuple[str, ...] = ()
    issue: Template | None = None
    starter_pr: Template | None = None
    solution_pr: Template | None = None

    def branch_name(self, part: StagePart) -> str:
        return f"{self.label}-{part.value}"

    def pr_template(self, part: StagePart) -> Template | None:
        if part is StagePart.STARTER:
            return self.starter_pr
        return self.solution_pr

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StageDefinition":
        return cls(
            label=data["label"],
            name=data["name"],
            has_starter=not data.get("no-starter", False),
            owned=tuple(data.get("owned", [])),
            issue=Template.from_dict(data.get("issue")),
            starter_pr=Template.from_dict(data.get("starter-pr")),
            solution_pr=Template.from_dict(data.get("solution-pr")),
        )
