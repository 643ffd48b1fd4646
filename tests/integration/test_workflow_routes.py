from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from fastapi.testclient import TestClient
from src.api.deps import GENERIC_DENIAL
from src.core.auth import Role

from tests.utils import RecordingSink, auth_headers

AUTHOR = auth_headers("author-1", Role.USER)
OTHER_USER = auth_headers("user-2", Role.USER)
MANAGER = auth_headers("manager-1", Role.MANAGER)
SECOND_MANAGER = auth_headers("manager-2", Role.MANAGER)
SME = auth_headers("sme-1", Role.SME)
ADMIN = auth_headers("admin-1", Role.ADMINISTRATOR)
BOARD = auth_headers("board-1", Role.BOARD_MEMBER)
DEVELOPER = auth_headers("dev-1", Role.DEVELOPER)
CHALLENGE_REVIEWER = auth_headers("reviewer-1", Role.CHALLENGE_REVIEWER)

EVERY_ROLE = [AUTHOR, OTHER_USER, MANAGER, SECOND_MANAGER, SME, BOARD, CHALLENGE_REVIEWER, ADMIN, DEVELOPER]


def _transition(
    client: TestClient, path: str, headers: dict[str, str], action: str, **extra: Any
) -> Any:
    return client.post(f"/{path}/transitions", json={"action": action, **extra}, headers=headers)


def _create_idea(client: TestClient, title: str = "Standing desks") -> str:
    response = client.post("/ideas", json={"title": title}, headers=AUTHOR)
    assert response.status_code == 201
    return response.json()["id"]


def test_requests_without_a_token_are_rejected(test_client: TestClient) -> None:
    response = test_client.post("/ideas", json={"title": "Standing desks"})

    assert response.status_code == 401


def test_idea_moves_through_review_over_http(
    test_client: TestClient, recorded_events: RecordingSink
) -> None:
    idea_id = _create_idea(test_client)
    path = f"ideas/{idea_id}"

    submitted = _transition(test_client, path, AUTHOR, "submit")
    assert submitted.status_code == 200
    assert submitted.json()["submission"]["stage"] == "submitted"

    moved = _transition(test_client, path, MANAGER, "approve", expected_stage="submitted")
    assert moved.status_code == 200
    assert moved.json()["stage_change"] == {
        **moved.json()["stage_change"],
        "from_stage": "submitted",
        "to_stage": "manager_review",
        "actor_id": "manager-1",
    }

    review = test_client.post(
        f"/ideas/{idea_id}/reviews",
        json={"decision": "approved", "score": 90, "comments": "Cheap and popular"},
        headers=SECOND_MANAGER,
    )
    assert review.status_code == 201
    body = review.json()
    assert body["review"]["review_stage"] == "manager_review"
    assert body["submission"]["stage"] == "sme_review"
    assert [change["to_stage"] for change in body["stage_changes"]] == ["sme_review"]

    fetched = test_client.get(f"/ideas/{idea_id}", headers=AUTHOR)
    assert fetched.status_code == 200
    assert fetched.json()["review_count"] == 1
    assert recorded_events.stages == [
        ("draft", "submitted"),
        ("submitted", "manager_review"),
        ("manager_review", "sme_review"),
    ]


def test_denial_detail_does_not_name_the_rule(test_client: TestClient) -> None:
    idea_id = _create_idea(test_client)
    _transition(test_client, f"ideas/{idea_id}", AUTHOR, "submit")

    response = _transition(test_client, f"ideas/{idea_id}", AUTHOR, "approve")

    assert response.status_code == 403
    assert response.json()["detail"] == GENERIC_DENIAL


def test_stale_expected_stage_is_409(test_client: TestClient) -> None:
    idea_id = _create_idea(test_client)
    path = f"ideas/{idea_id}"
    _transition(test_client, path, AUTHOR, "submit")
    _transition(test_client, path, MANAGER, "approve", expected_stage="submitted")

    response = _transition(test_client, path, SECOND_MANAGER, "approve", expected_stage="submitted")

    assert response.status_code == 409


def test_missing_edge_is_422(test_client: TestClient) -> None:
    idea_id = _create_idea(test_client)
    _transition(test_client, f"ideas/{idea_id}", AUTHOR, "submit")

    response = _transition(test_client, f"ideas/{idea_id}", MANAGER, "begin_review")

    assert response.status_code == 422


def test_unknown_expected_stage_is_422(test_client: TestClient) -> None:
    idea_id = _create_idea(test_client)

    response = _transition(test_client, f"ideas/{idea_id}", AUTHOR, "submit", expected_stage="limbo")

    assert response.status_code == 422


def test_unknown_submission_is_404(test_client: TestClient) -> None:
    response = test_client.get("/ideas/does-not-exist", headers=MANAGER)

    assert response.status_code == 404


def test_draft_edit_and_delete(test_client: TestClient) -> None:
    idea_id = _create_idea(test_client)

    edited = test_client.patch(
        f"/ideas/{idea_id}", json={"description": "Two per team"}, headers=AUTHOR
    )
    denied = test_client.delete(f"/ideas/{idea_id}", headers=OTHER_USER)
    deleted = test_client.delete(f"/ideas/{idea_id}", headers=AUTHOR)

    assert edited.status_code == 200
    assert edited.json()["description"] == "Two per team"
    assert denied.status_code == 403
    assert deleted.status_code == 204
    assert test_client.get(f"/ideas/{idea_id}", headers=AUTHOR).status_code == 404


def test_collaboration_request_and_accept(test_client: TestClient) -> None:
    idea_id = _create_idea(test_client)
    _transition(test_client, f"ideas/{idea_id}", AUTHOR, "submit")
    toggled = test_client.put(
        f"/ideas/{idea_id}/collaboration", json={"enabled": True}, headers=AUTHOR
    )
    assert toggled.json()["collaboration_enabled"] is True

    requested = test_client.post(
        f"/ideas/{idea_id}/collaborations", json={"message": "Happy to help"}, headers=OTHER_USER
    )
    assert requested.status_code == 201
    collaboration_id = requested.json()["id"]

    duplicate = test_client.post(f"/ideas/{idea_id}/collaborations", json={}, headers=OTHER_USER)
    unknown_action = test_client.post(f"/collaborations/{collaboration_id}/ignore", headers=AUTHOR)
    accepted = test_client.post(f"/collaborations/{collaboration_id}/accept", headers=AUTHOR)

    assert duplicate.status_code == 409
    assert unknown_action.status_code == 422
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"


def test_challenge_from_publish_to_winner(
    test_client: TestClient, recorded_events: RecordingSink
) -> None:
    deadline = (datetime.now(UTC) + timedelta(days=7)).isoformat()
    created = test_client.post(
        "/challenges",
        json={"title": "Faster onboarding", "submission_deadline": deadline},
        headers=MANAGER,
    )
    assert created.status_code == 201
    challenge_id = created.json()["id"]
    assert created.json()["status"] == "draft"

    published = test_client.post(f"/challenges/{challenge_id}/publish", headers=MANAGER)
    assert published.json()["status"] == "active"

    creator_entry = test_client.post(
        f"/challenges/{challenge_id}/submissions", json={"title": "Mine"}, headers=MANAGER
    )
    assert creator_entry.status_code == 403

    entry = test_client.post(
        f"/challenges/{challenge_id}/submissions", json={"title": "Buddy system"}, headers=AUTHOR
    )
    assert entry.status_code == 201
    entry_id = entry.json()["id"]
    again = test_client.post(
        f"/challenges/{challenge_id}/submissions", json={"title": "Another"}, headers=AUTHOR
    )
    assert again.status_code == 409

    path = f"challenge-submissions/{entry_id}"
    assert _transition(test_client, path, AUTHOR, "submit").status_code == 200
    assert _transition(test_client, path, ADMIN, "begin_review").status_code == 200

    missing_stage = test_client.post(
        f"/challenge-submissions/{entry_id}/reviews", json={"decision": "approved"}, headers=SME
    )
    assert missing_stage.status_code == 422

    first = test_client.post(
        f"/challenge-submissions/{entry_id}/reviews",
        json={"decision": "approved", "score": 90, "review_stage": "manager_review"},
        headers=SECOND_MANAGER,
    )
    second = test_client.post(
        f"/challenge-submissions/{entry_id}/reviews",
        json={"decision": "approved", "score": 85, "review_stage": "sme_review"},
        headers=SME,
    )
    assert first.json()["submission"]["stage"] == "under_review"
    assert second.json()["submission"]["stage"] == "evaluated"
    assert second.json()["submission"]["evaluation"] == "recommended"

    for status in ("closed", "judging"):
        moved = test_client.post(
            f"/challenges/{challenge_id}/status", json={"status": status}, headers=MANAGER
        )
        assert moved.json()["status"] == status

    winners = test_client.post(
        f"/challenges/{challenge_id}/winners",
        json={
            "winners": [
                {"submission_id": entry_id, "ranking": 1},
                {"submission_id": entry_id, "ranking": 2},
            ]
        },
        headers=MANAGER,
    )
    assert winners.status_code == 200
    assert winners.json()["results"] == [{"submission_id": entry_id, "selected": True, "error": None}]

    listed = test_client.get(f"/challenges/{challenge_id}/submissions", headers=MANAGER)
    assert [(item["id"], item["stage"], item["ranking"]) for item in listed.json()] == [
        (entry_id, "winner", 1)
    ]
    assert recorded_events.stages[-1] == ("evaluated", "winner")


def _idea_in(client: TestClient, stage: str) -> str:
    idea_id = _create_idea(client, title="Quiet rooms")
    path = f"ideas/{idea_id}"
    _transition(client, path, AUTHOR, "submit")
    _transition(client, path, MANAGER, "approve")
    if stage == "sme_review":
        reviewed = client.post(
            f"/ideas/{idea_id}/reviews", json={"decision": "approved", "score": 88}, headers=SECOND_MANAGER
        )
        assert reviewed.json()["submission"]["stage"] == "sme_review"
    return path


def _entry_under_review(client: TestClient) -> str:
    deadline = (datetime.now(UTC) + timedelta(days=7)).isoformat()
    created = client.post(
        "/challenges", json={"title": "Fewer meetings", "submission_deadline": deadline}, headers=MANAGER
    )
    challenge_id = created.json()["id"]
    client.post(f"/challenges/{challenge_id}/publish", headers=MANAGER)
    entry = client.post(
        f"/challenges/{challenge_id}/submissions", json={"title": "No-meeting Fridays"}, headers=AUTHOR
    )
    path = f"challenge-submissions/{entry.json()['id']}"
    _transition(client, path, AUTHOR, "submit")
    assert _transition(client, path, ADMIN, "begin_review").json()["submission"]["stage"] == "under_review"
    return path


@pytest.mark.parametrize("stage", ["manager_review", "sme_review"])
@pytest.mark.parametrize("action", ["approve", "reject", "request_changes"])
def test_idea_review_decisions_are_refused_on_the_transition_route(
    test_client: TestClient, recorded_events: RecordingSink, stage: str, action: str
) -> None:
    path = _idea_in(test_client, stage)
    changes_before = len(recorded_events.events)

    statuses = [_transition(test_client, path, headers, action).status_code for headers in EVERY_ROLE]

    assert set(statuses) == {403}
    idea = test_client.get(f"/{path}", headers=AUTHOR).json()
    assert idea["stage"] == stage
    assert len(recorded_events.events) == changes_before


@pytest.mark.parametrize("action", ["evaluate", "approve", "reject", "request_changes"])
def test_entry_review_decisions_are_refused_on_the_transition_route(
    test_client: TestClient, recorded_events: RecordingSink, action: str
) -> None:
    path = _entry_under_review(test_client)
    changes_before = len(recorded_events.events)

    statuses = [
        _transition(
            test_client, path, headers, action, evaluation="recommended", review_stage="sme_review"
        ).status_code
        for headers in EVERY_ROLE
    ]

    assert set(statuses) == {403}
    entry = test_client.get(f"/{path}", headers=AUTHOR).json()
    assert entry["stage"] == "under_review"
    assert entry["evaluation"] is None
    assert len(recorded_events.events) == changes_before


def test_rejected_idea_stays_undeletable_over_http(test_client: TestClient) -> None:
    path = _idea_in(test_client, "sme_review")
    idea_id = path.split("/")[1]

    rejected = test_client.post(f"/ideas/{idea_id}/reviews", json={"decision": "rejected"}, headers=SME)

    assert rejected.json()["submission"]["stage"] == "draft"
    assert test_client.delete(f"/{path}", headers=AUTHOR).status_code == 403
