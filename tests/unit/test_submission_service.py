from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta

import pytest
from src.core.auth import Role
from src.domain.errors import (
    DuplicateSubmissionError,
    NotFoundError,
    PreconditionFailedError,
    UnauthorizedError,
)
from src.domain.models import Actor, Challenge, ChallengeStatus, utcnow
from src.domain.services import SubmissionService, WorkflowService
from src.domain.stages import Action, ChallengeSubmissionStatus, IdeaStage, SubmissionKind
from src.infrastructure.repositories.unit_of_work import UnitOfWork

from tests.utils import RecordingSink, make_actor

IDEA = SubmissionKind.IDEA


class TestIdeas:
    async def test_create_stores_a_draft_without_the_author_in_the_team(
        self, uow: UnitOfWork, author: Actor
    ) -> None:
        idea = await SubmissionService(uow).create_idea(
            author, title="Quiet rooms", team_members=["user-2", author.actor_id, ""]
        )

        stored = await uow.submissions.get_idea(idea.submission_id)
        assert stored.current_stage is IdeaStage.DRAFT
        assert stored.author_id == author.actor_id
        assert stored.team_members == frozenset({"user-2"})

    async def test_terms_must_be_accepted_to_create(self, uow: UnitOfWork) -> None:
        newcomer = make_actor("user-9", Role.USER, terms_accepted=False)

        with pytest.raises(UnauthorizedError) as exc_info:
            await SubmissionService(uow).create_idea(newcomer, title="Quiet rooms")

        assert exc_info.value.rule == "terms_not_accepted"

    async def test_author_edits_only_while_editable(
        self, uow: UnitOfWork, author: Actor
    ) -> None:
        service = SubmissionService(uow)
        idea = await service.create_idea(author, title="Quiet rooms")

        edited = await service.update(author, IDEA, idea.submission_id, title="Quiet rooms on every floor")
        await WorkflowService(uow, events=RecordingSink()).request_transition(
            author, IDEA, idea.submission_id, Action.SUBMIT
        )
        with pytest.raises(UnauthorizedError) as exc_info:
            await service.update(author, IDEA, idea.submission_id, title="Too late")

        assert edited.title == "Quiet rooms on every floor"
        assert exc_info.value.rule == "stage_not_editable"
        stored = await uow.submissions.get_idea(idea.submission_id)
        assert stored.title == "Quiet rooms on every floor"

    async def test_elevated_edit_needs_an_editable_stage_or_reviews(
        self, uow: UnitOfWork, author: Actor, admin: Actor
    ) -> None:
        service = SubmissionService(uow)
        idea = await service.create_idea(author, title="Quiet rooms")
        await WorkflowService(uow, events=RecordingSink()).request_transition(
            author, IDEA, idea.submission_id, Action.SUBMIT
        )

        with pytest.raises(UnauthorizedError):
            await service.update(admin, IDEA, idea.submission_id, description="Edited by an admin")

        stored = await uow.submissions.get_idea(idea.submission_id)
        assert stored.current_stage is IdeaStage.SUBMITTED

    async def test_delete_removes_the_idea(self, uow: UnitOfWork, author: Actor) -> None:
        service = SubmissionService(uow)
        idea = await service.create_idea(author, title="Quiet rooms")

        await service.delete(author, IDEA, idea.submission_id)

        with pytest.raises(NotFoundError):
            await uow.submissions.get_idea(idea.submission_id)

    async def test_only_owner_or_viewers_can_read(
        self, uow: UnitOfWork, author: Actor, manager: Actor
    ) -> None:
        service = SubmissionService(uow)
        idea = await service.create_idea(author, title="Quiet rooms")

        assert (await service.get(manager, IDEA, idea.submission_id)).submission_id == idea.submission_id
        with pytest.raises(UnauthorizedError):
            await service.get(make_actor("user-2", Role.USER), IDEA, idea.submission_id)

    async def test_export_includes_reviews_and_collaborations(
        self, uow: UnitOfWork, author: Actor
    ) -> None:
        service = SubmissionService(uow)
        idea = await service.create_idea(author, title="Quiet rooms", team_members=["user-2"])

        exported = await service.export(author, IDEA, idea.submission_id)

        assert exported["submission"]["current_stage"] == "draft"
        assert exported["submission"]["team_members"] == ["user-2"]
        assert exported["reviews"] == []
        assert exported["collaborations"] == []

    async def test_toggle_collaboration(self, uow: UnitOfWork, author: Actor) -> None:
        service = SubmissionService(uow)
        idea = await service.create_idea(author, title="Quiet rooms")

        toggled = await service.set_collaboration(author, IDEA, idea.submission_id, enabled=True)
        with pytest.raises(UnauthorizedError):
            await service.set_collaboration(
                make_actor("user-2", Role.USER), IDEA, idea.submission_id, enabled=False
            )

        assert toggled.collaboration_enabled
        assert (await uow.submissions.get_idea(idea.submission_id)).collaboration_enabled


class TestChallengeEntries:
    async def test_one_entry_per_participant(
        self, uow: UnitOfWork, active_challenge: Challenge, author: Actor
    ) -> None:
        service = SubmissionService(uow)
        await service.create_challenge_submission(author, active_challenge.challenge_id, title="First")

        with pytest.raises(DuplicateSubmissionError):
            await service.create_challenge_submission(author, active_challenge.challenge_id, title="Second")

    async def test_duplicate_is_reported_even_after_the_deadline(
        self, uow: UnitOfWork, active_challenge: Challenge, author: Actor
    ) -> None:
        await SubmissionService(uow).create_challenge_submission(
            author, active_challenge.challenge_id, title="First"
        )
        late = active_challenge.submission_deadline + timedelta(days=1)

        with pytest.raises(DuplicateSubmissionError):
            await SubmissionService(uow, clock=lambda: late).create_challenge_submission(
                author, active_challenge.challenge_id, title="Second"
            )

    async def test_entry_after_deadline_is_a_precondition_failure(
        self, uow: UnitOfWork, active_challenge: Challenge, author: Actor
    ) -> None:
        late = active_challenge.submission_deadline + timedelta(seconds=1)

        with pytest.raises(PreconditionFailedError):
            await SubmissionService(uow, clock=lambda: late).create_challenge_submission(
                author, active_challenge.challenge_id, title="Too late"
            )

    async def test_challenge_must_be_active(
        self, uow_factory: Callable[[], UnitOfWork], uow: UnitOfWork, manager: Actor, author: Actor
    ) -> None:
        draft = Challenge(
            challenge_id="challenge-draft",
            title="Not yet published",
            created_by=manager.actor_id,
            status=ChallengeStatus.DRAFT,
        )
        async with uow_factory() as setup:
            await setup.challenges.add(draft)

        with pytest.raises(PreconditionFailedError):
            await SubmissionService(uow).create_challenge_submission(
                author, draft.challenge_id, title="Early bird"
            )

    async def test_participant_limit(
        self, uow_factory: Callable[[], UnitOfWork], uow: UnitOfWork, manager: Actor, author: Actor
    ) -> None:
        small = Challenge(
            challenge_id="challenge-small",
            title="Pilot with one team",
            created_by=manager.actor_id,
            status=ChallengeStatus.ACTIVE,
            submission_deadline=utcnow() + timedelta(days=2),
            max_participants=1,
        )
        async with uow_factory() as setup:
            await setup.challenges.add(small)
        service = SubmissionService(uow)
        await service.create_challenge_submission(author, small.challenge_id, title="Only one")

        with pytest.raises(PreconditionFailedError):
            await service.create_challenge_submission(
                make_actor("user-2", Role.USER), small.challenge_id, title="One too many"
            )

    async def test_creator_cannot_enter_own_challenge(
        self, uow: UnitOfWork, active_challenge: Challenge, manager: Actor
    ) -> None:
        with pytest.raises(UnauthorizedError) as exc_info:
            await SubmissionService(uow).create_challenge_submission(
                manager, active_challenge.challenge_id, title="Mine"
            )

        assert exc_info.value.rule == "conflict_of_interest:challenge_creator"

    async def test_entry_is_linked_to_its_challenge(
        self, uow: UnitOfWork, active_challenge: Challenge, author: Actor
    ) -> None:
        entry = await SubmissionService(uow).create_challenge_submission(
            author, active_challenge.challenge_id, title="Linked"
        )

        stored = await uow.submissions.get_challenge_submission(entry.submission_id)
        assert stored.current_stage is ChallengeSubmissionStatus.DRAFT
        assert stored.challenge is not None
        assert stored.challenge.challenge_id == active_challenge.challenge_id
        assert stored.challenge.submission_count == 1

    async def test_unknown_challenge(self, uow: UnitOfWork, author: Actor) -> None:
        with pytest.raises(NotFoundError):
            await SubmissionService(uow).create_challenge_submission(author, "no-such-challenge", title="x")
