"""Tests for repoquest.workflow.fsm module."""

import pytest

from repoquest.quest.stage import StagePart, StagePartStatus
from repoquest.quest.state import Completed, Ongoing
from repoquest.workflow.fsm import (
    ProgressFSM,
    STATES,
    TRANSITIONS,
    TRIGGER_FOR,
    explain_transition,
    state_name,
)

S, B = StagePart.STARTER, StagePart.SOLUTION
START, WAIT = StagePartStatus.START, StagePartStatus.WAITING


class TestFSMStates:
    """Tests for FSM state definitions."""

    def test_all_states_defined(self):
        assert set(STATES) == {
            "starter_start", "starter_waiting", "solution_start", "solution_waiting", "completed",
        }

    def test_transitions_reference_known_states(self):
        for t in TRANSITIONS:
            assert t["source"] in STATES
            assert t["dest"] in STATES

    def test_state_name(self):
        assert state_name(Ongoing(3, B, WAIT)) == "solution_waiting"
        assert state_name(Completed()) == "completed"

    def test_state_name_rejects_other_values(self):
        with pytest.raises(TypeError):
            state_name("stage 1")


class TestProgressFSM:
    """Preconditions derived from the transition table."""

    def test_advance_from_starter_start(self):
        assert ProgressFSM(Ongoing(0, S, START)).can("file_feature_and_issue")

    def test_advance_is_repeatable_while_waiting(self):
        assert ProgressFSM(Ongoing(0, S, WAIT)).can("file_feature_and_issue")

    def test_advance_not_allowed_in_solution_with_starter(self):
        assert not ProgressFSM(Ongoing(0, B, START), has_starter=True).can("file_feature_and_issue")

    def test_advance_repeatable_in_solution_without_starter(self):
        assert ProgressFSM(Ongoing(0, B, START), has_starter=False).can("file_feature_and_issue")

    def test_solution_requires_merged_starter(self):
        assert not ProgressFSM(Ongoing(0, S, WAIT)).can("file_solution")
        assert ProgressFSM(Ongoing(0, B, START)).can("file_solution")

    def test_nothing_from_completed(self):
        fsm = ProgressFSM(Completed())
        assert not fsm.can("file_feature_and_issue")
        assert not fsm.can("file_solution")
        assert not fsm.can("hard_reset")


class TestExplainTransition:

    def test_unchanged(self):
        assert explain_transition(Ongoing(1, S, START), Ongoing(1, S, START)) == "unchanged"

    def test_same_stage_moves(self):
        assert explain_transition(Ongoing(0, S, START), Ongoing(0, S, WAIT)) == "file_feature_and_issue"
        assert explain_transition(Ongoing(0, S, WAIT), Ongoing(0, B, START)) == "starter_merged"
        assert explain_transition(Ongoing(0, B, WAIT), Ongoing(0, B, START)) == "solution_merged"

    def test_next_stage(self):
        assert explain_transition(Ongoing(0, B, START), Ongoing(1, S, START)) == "stage_completed"

    def test_completion(self):
        assert explain_transition(Ongoing(2, B, START), Completed()) == "quest_completed"

    def test_unexpected_jumps(self):
        assert explain_transition(Ongoing(0, S, START), Ongoing(2, S, START)) is None
        assert explain_transition(Ongoing(1, S, START), Ongoing(0, B, START)) is None
        assert explain_transition(Completed(), Ongoing(0, S, START)) is None

    def test_trigger_lookup_first_wins(self):
        assert TRIGGER_FOR[("starter_waiting", "starter_start")] == "hard_reset"
