from __future__ import annotations

import pytest
from src.domain.errors import CorruptStateError, InvalidTransitionError
from src.domain.stages import (
    STAGE_MACHINE,
    Action,
    ChallengeSubmissionStatus,
    IdeaStage,
    StageGraph,
    StageMachine,
    SubmissionKind,
)

IDEA = SubmissionKind.IDEA
ENTRY = SubmissionKind.CHALLENGE_SUBMISSION


class TestIdeaGraph:
    def test_approval_path_visits_every_stage_in_order(self) -> None:
        path = [target for _, _, target in STAGE_MACHINE.approval_path(IDEA)]

        assert path == [
            IdeaStage.SUBMITTED,
            IdeaStage.MANAGER_REVIEW,
            IdeaStage.SME_REVIEW,
            IdeaStage.COLLABORATION,
            IdeaStage.BOARD_REVIEW,
            IdeaStage.IMPLEMENTATION,
            IdeaStage.COMPLETED,
        ]

    def test_repeated_approve_walks_the_same_path(self) -> None:
        stage = STAGE_MACHINE.require_transition(IDEA, IdeaStage.DRAFT, Action.SUBMIT)
        visited = [stage]
        while not STAGE_MACHINE.is_terminal(IDEA, stage):
            stage = STAGE_MACHINE.require_transition(IDEA, stage, Action.APPROVE)
            visited.append(stage)

        assert visited[-1] is IdeaStage.COMPLETED
        assert len(visited) == len(set(visited))

    def test_approve_at_draft_is_a_synonym_of_submit(self) -> None:
        assert STAGE_MACHINE.can_transition(IDEA, IdeaStage.DRAFT, Action.APPROVE) is IdeaStage.SUBMITTED

    @pytest.mark.parametrize(
        "stage", [IdeaStage.MANAGER_REVIEW, IdeaStage.SME_REVIEW, IdeaStage.BOARD_REVIEW]
    )
    @pytest.mark.parametrize("action", [Action.REQUEST_CHANGES, Action.REJECT])
    def test_review_stages_return_to_draft(self, stage: IdeaStage, action: Action) -> None:
        assert STAGE_MACHINE.require_transition(IDEA, stage, action) is IdeaStage.DRAFT

    def test_request_changes_outside_review_is_invalid(self) -> None:
        with pytest.raises(InvalidTransitionError):
            STAGE_MACHINE.require_transition(IDEA, IdeaStage.SUBMITTED, Action.REQUEST_CHANGES)

    def test_terminal_stages_have_no_edges(self) -> None:
        for stage in (IdeaStage.COMPLETED, IdeaStage.ARCHIVED):
            assert STAGE_MACHINE.actions_from(IDEA, stage) == []
            assert STAGE_MACHINE.can_transition(IDEA, stage, Action.ARCHIVE) is None

    def test_every_non_terminal_stage_can_be_archived(self) -> None:
        for stage in IdeaStage:
            if STAGE_MACHINE.is_terminal(IDEA, stage):
                continue
            assert STAGE_MACHINE.can_transition(IDEA, stage, Action.ARCHIVE) is IdeaStage.ARCHIVED

    def test_only_draft_is_editable(self) -> None:
        editable = [stage for stage in IdeaStage if STAGE_MACHINE.is_editable(IDEA, stage)]
        assert editable == [IdeaStage.DRAFT]


class TestChallengeSubmissionGraph:
    def test_approval_path(self) -> None:
        path = [(source, action) for source, action, _ in STAGE_MACHINE.approval_path(ENTRY)]

        assert path == [
            (ChallengeSubmissionStatus.DRAFT, Action.SUBMIT),
            (ChallengeSubmissionStatus.SUBMITTED, Action.BEGIN_REVIEW),
            (ChallengeSubmissionStatus.UNDER_REVIEW, Action.EVALUATE),
            (ChallengeSubmissionStatus.EVALUATED, Action.SELECT_WINNER),
        ]

    def test_request_changes_returns_to_draft(self) -> None:
        target = STAGE_MACHINE.require_transition(
            ENTRY, ChallengeSubmissionStatus.UNDER_REVIEW, Action.REQUEST_CHANGES
        )
        assert target is ChallengeSubmissionStatus.DRAFT

    def test_only_under_review_is_reviewable(self) -> None:
        reviewable = [
            stage for stage in ChallengeSubmissionStatus if STAGE_MACHINE.is_reviewable(ENTRY, stage)
        ]
        assert reviewable == [ChallengeSubmissionStatus.UNDER_REVIEW]


class TestParsing:
    def test_parse_known_stage(self) -> None:
        assert STAGE_MACHINE.parse_stage(IDEA, "sme_review") is IdeaStage.SME_REVIEW

    def test_unknown_stage_is_corrupt_state(self) -> None:
        with pytest.raises(CorruptStateError) as exc_info:
            STAGE_MACHINE.parse_stage(ENTRY, "shortlisted", submission_id="entry-9")

        assert exc_info.value.raw_stage == "shortlisted"
        assert exc_info.value.submission_id == "entry-9"

    def test_stage_of_other_kind_is_rejected(self) -> None:
        with pytest.raises(CorruptStateError):
            STAGE_MACHINE.parse_stage(ENTRY, IdeaStage.MANAGER_REVIEW.value)


class TestValidation:
    def test_dead_end_stage_is_rejected_at_construction(self) -> None:
        graph = STAGE_MACHINE.graph(IDEA)
        transitions = {
            key: target
            for key, target in graph.transitions.items()
            if key[0] is not IdeaStage.IMPLEMENTATION
        }
        broken = StageGraph(
            kind=graph.kind,
            stage_type=graph.stage_type,
            start=graph.start,
            order=graph.order,
            terminal=graph.terminal,
            editable=graph.editable,
            reviewable=graph.reviewable,
            transitions=transitions,
        )

        with pytest.raises(RuntimeError, match="no outgoing edge"):
            StageMachine(broken)
