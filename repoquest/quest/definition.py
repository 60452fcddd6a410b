"""
Quest definition loading.

A quest package is one document (YAML, JSON, or gzip-compressed JSON) that
names the quest, its forge repository, and its ordered stages. The same
document lives as rqst.yaml on the quest repository's meta branch.

Example:

    title: Build a Parser
    author: cognitive-engineering-lab
    repo: parser-quest
    read-only: [".github/**"]
    stages:
      - label: lexer
        name: Write the lexer
        owned: ["src/tokens.py"]
        issue: {title: "Implement the lexer", body: "See {{ lexer pr }}"}
        starter-pr: {title: "Lexer scaffolding"}
"""

import gzip
import json
import logging
from dataclasses import dataclass
from itertools import combinations
from pathlib import Path
from typing import Any

import yaml

from repoquest import __version__
from repoquest.lib import validate
from repoquest.lib.errors import PackageError, RepositoryError
from repoquest.quest.stage import (
    StageDefinition,
    directory_prefix,
    is_directory_pattern,
    path_matches,
)

logger = logging.getLogger(__name__)

QUEST_CONFIG_FILE = "rqst.yaml"


@dataclass(frozen=True)
class QuestDefinition:
    """Immutable description of a loaded quest."""
    title: str
    author: str
    repo: str
    stages: tuple[StageDefinition, ...]
    read_only: tuple[str, ...] = ()
    final: Any = None
    version: str | None = None

    def stage(self, index: int) -> StageDefinition:
        if not 0 <= index < len(self.stages):
            raise IndexError(f"Stage {index} out of range (quest has {len(self.stages)})")
        return self.stages[index]

    def stage_index(self, label: str) -> int | None:
        for i, stage in enumerate(self.stages):
            if stage.label == label:
                return i
        return None

    def owned_through(self, index: int) -> tuple[str, ...]:
        """Reference-owned patterns for stages 0..index plus quest-wide read-only paths."""
        patterns = list(self.read_only)
        for stage in self.stages[:index + 1]:
            patterns.extend(stage.owned)
        return tuple(patterns)


def _patterns_overlap(a: str, b: str) -> bool:
    if a == b:
        return True
    a_dir, b_dir = is_directory_pattern(a), is_directory_pattern(b)
    if a_dir and b_dir:
        pa, pb = directory_prefix(a), directory_prefix(b)
        return pa.startswith(pb) or pb.startswith(pa)
    # A literal path (or glob) claimed by the other stage's pattern
    if path_matches(a, b) or path_matches(b, a):
        return True
    return False


def check_ownership(stages: tuple[StageDefinition, ...]) -> None:
    """Reject packages where two stages claim the same path."""
    for first, second in combinations(stages, 2):
        for a in first.owned:
            for b in second.owned:
                if _patterns_overlap(a, b):
                    raise PackageError(
                        f"Stages '{first.label}' and '{second.label}' both own '{a}'"
                        + (f" / '{b}'" if a != b else "")
                    )


def _check_version(version: str | None) -> None:
    if not version:
        return
    if version.split(".")[0] != __version__.split(".")[0]:
        logger.warning(
            f"[PACKAGE] Package version {version} may be incompatible with engine {__version__}"
        )


def parse_quest(data: Any) -> QuestDefinition:
    """Validate a parsed package document and build the QuestDefinition."""
    try:
        validate.validate(data, "quest")
    except validate.ValidationError as e:
        raise PackageError(f"Invalid quest package: {e}") from e

    stages = tuple(StageDefinition.from_dict(s) for s in data["stages"])

    labels = [s.label for s in stages]
    duplicates = sorted({label for label in labels if labels.count(label) > 1})
    if duplicates:
        raise PackageError(f"Duplicate stage labels: {', '.join(duplicates)}")

    check_ownership(stages)
    _check_version(data.get("version"))

    return QuestDefinition(
        title=data["title"],
        author=data["author"],
        repo=data["repo"],
        stages=stages,
        read_only=tuple(data.get("read-only", [])),
        final=data.get("final"),
        version=data.get("version"),
    )


def _read_document(path: Path) -> Any:
    name = path.name.lower()
    try:
        if name.endswith(".json.gz"):
            with gzip.open(path, "rt", encoding="utf-8") as f:
                return json.load(f)
        if name.endswith(".json"):
            return json.loads(path.read_text())
        return yaml.safe_load(path.read_text())
    except (OSError, EOFError) as e:
        raise PackageError(f"Failed to read quest package {path}: {e}") from e
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise PackageError(f"Failed to parse quest package {path}: {e}") from e


def load_quest(source: Path) -> QuestDefinition:
    """Load a quest package from a file."""
    source = Path(source)
    if not source.exists():
        raise PackageError(f"Quest package not found: {source}")
    quest = parse_quest(_read_document(source))
    logger.info(f"[PACKAGE] Loaded '{quest.title}' ({len(quest.stages)} stages) from {source}")
    return quest


def load_quest_from_repo(repo, meta_branch: str = "meta", remote: str = "origin") -> QuestDefinition:
    """Load rqst.yaml from the meta branch (local first, then the remote copy)."""
    refs = [meta_branch, f"{remote}/{meta_branch}"]
    for ref in refs:
        if not repo.ref_exists(ref):
            continue
        try:
            text = repo.show(ref, QUEST_CONFIG_FILE)
        except RepositoryError as e:
            raise PackageError(f"{QUEST_CONFIG_FILE} missing on {ref}", cause=str(e)) from e
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise PackageError(f"Failed to parse {QUEST_CONFIG_FILE} on {ref}: {e}") from e
        return parse_quest(data)

    raise PackageError(f"No quest configuration: none of {', '.join(refs)} exist")
