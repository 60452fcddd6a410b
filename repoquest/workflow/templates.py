"""
Issue and PR body rendering.

Quest prose is opaque, with one exception: placeholders of the form
"{{ <stage-label> issue }}" and "{{ <stage-label> pr }}" are rewritten to the
forge number ("#12") of that stage's issue or PR in the learner's repository.
Unresolvable placeholders are left as-is.
"""

import logging
import re

from repoquest.quest.definition import QuestDefinition
from repoquest.quest.stage import StageDefinition, StagePart, Template

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"\{\{ (\S+) (\S+) \}\}")

STARTER_RESET_NOTE = (
    "Note: due to a merge conflict, this PR is a hard reset to the starter code, "
    "and may have overwritten your previous changes."
)
SOLUTION_RESET_NOTE = (
    "Note: due to a merge conflict, this PR is a hard reset to the reference solution, "
    "and may have overwritten your previous changes."
)


def _lookup(forge, label: str, kind: str) -> int | None:
    if kind == "issue":
        issue = forge.find_issue(label)
        return issue.number if issue else None
    if kind == "pr":
        for part in (StagePart.STARTER, StagePart.SOLUTION):
            pr = forge.find_pull_request(label, part)
            if pr is not None:
                return pr.number
        return None
    logger.warning(f"[TEMPLATE] Unknown placeholder kind '{kind}' for '{label}'")
    return None


def render_body(body: str, forge) -> str:
    """Replace {{ label kind }} placeholders with forge numbers."""

    def substitute(match: re.Match) -> str:
        label, kind = match.group(1), match.group(2)
        number = _lookup(forge, label, kind)
        if number is None:
            logger.warning(f"[TEMPLATE] No {kind} with label {label}")
            return match.group(0)
        return f"#{number}"

    return PLACEHOLDER_RE.sub(substitute, body)


def issue_template(stage: StageDefinition) -> Template:
    return stage.issue or Template(title=stage.name)


def pr_template(stage: StageDefinition, part: StagePart) -> Template:
    template = stage.pr_template(part)
    if template is not None:
        return template
    suffix = "starter code" if part is StagePart.STARTER else "reference solution"
    return Template(title=f"{stage.name}: {suffix}")


def reset_pr_body(quest: QuestDefinition, stage_index: int, baseline: str, prior: str,
                  reason: str, paths: tuple[str, ...] = ()) -> str:
    """Body of the PR documenting a hard reset."""
    stage = quest.stage(stage_index)
    lines = [
        f"This repository was reset to `{baseline}`, the reference state at the start of "
        f"stage {stage_index} ({stage.name}).",
        "",
        f"Reason: {reason}",
        "",
        f"The previous tip `{prior[:8]}` is preserved on this PR's branch. "
        "Merging this PR would restore it; close it once you have recovered anything you need.",
    ]
    if paths:
        lines += ["", "Reference-owned files that had been modified:"]
        lines += [f"- `{p}`" for p in paths]
    return "\n".join(lines)
