"""Stage machines for ideas and challenge submissions.

Each machine is an explicit table ``(stage, action) -> next stage``. The tables
are immutable, process-wide configuration and are validated at import: every
stage is reachable from the start stage, terminal stages have no outgoing
edges, and every non-terminal stage has at least one.

Idea:
    draft -> submitted -> manager_review -> sme_review -> collaboration
          -> board_review -> implementation -> completed
    review stages send ``request_changes``/``reject`` back to draft,
    ``archive`` is available from every non-terminal stage.

Challenge submission:
    draft -> submitted -> under_review -> evaluated -> winner
    ``request_changes`` sends under_review back to draft,
    ``archive`` is available from every non-terminal stage.
"""

from __future__ import annotations

import enum
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from src.domain.errors import CorruptStateError, InvalidTransitionError


class SubmissionKind(str, enum.Enum):
    IDEA = "idea"
    CHALLENGE_SUBMISSION = "challenge_submission"


class IdeaStage(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    MANAGER_REVIEW = "manager_review"
    SME_REVIEW = "sme_review"
    COLLABORATION = "collaboration"
    BOARD_REVIEW = "board_review"
    IMPLEMENTATION = "implementation"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class ChallengeSubmissionStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    EVALUATED = "evaluated"
    WINNER = "winner"
    ARCHIVED = "archived"


class ReviewStage(str, enum.Enum):
    """Fine-grained stage a Review is recorded against."""

    MANAGER_REVIEW = "manager_review"
    SME_REVIEW = "sme_review"
    BOARD_REVIEW = "board_review"
    CHALLENGE_REVIEW = "challenge_review"


class Action(str, enum.Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_CHANGES = "request_changes"
    BEGIN_REVIEW = "begin_review"
    EVALUATE = "evaluate"
    SELECT_WINNER = "select_winner"
    ARCHIVE = "archive"


Stage = IdeaStage | ChallengeSubmissionStatus


@dataclass(frozen=True, slots=True)
class StageGraph:
    kind: SubmissionKind
    stage_type: type[enum.Enum]
    start: Stage
    order: tuple[Stage, ...]
    terminal: frozenset[Stage]
    editable: frozenset[Stage]
    reviewable: frozenset[Stage]
    transitions: Mapping[tuple[Stage, Action], Stage]

    def outgoing(self, stage: Stage) -> dict[Action, Stage]:
        return {action: target for (source, action), target in self.transitions.items() if source == stage}

    def rank(self, stage: Stage) -> int:
        return self.order.index(stage)


def _with_archive(
    table: dict[tuple[Stage, Action], Stage],
    stages: type[enum.Enum],
    terminal: frozenset[Stage],
    archived: Stage,
) -> Mapping[tuple[Stage, Action], Stage]:
    for stage in stages:
        if stage not in terminal:
            table[(stage, Action.ARCHIVE)] = archived
    return MappingProxyType(table)


_IDEA_TERMINAL = frozenset({IdeaStage.COMPLETED, IdeaStage.ARCHIVED})
_IDEA_TRANSITIONS: dict[tuple[Stage, Action], Stage] = {
    (IdeaStage.DRAFT, Action.SUBMIT): IdeaStage.SUBMITTED,
    (IdeaStage.DRAFT, Action.APPROVE): IdeaStage.SUBMITTED,
    (IdeaStage.SUBMITTED, Action.APPROVE): IdeaStage.MANAGER_REVIEW,
    (IdeaStage.MANAGER_REVIEW, Action.APPROVE): IdeaStage.SME_REVIEW,
    (IdeaStage.SME_REVIEW, Action.APPROVE): IdeaStage.COLLABORATION,
    (IdeaStage.COLLABORATION, Action.APPROVE): IdeaStage.BOARD_REVIEW,
    (IdeaStage.BOARD_REVIEW, Action.APPROVE): IdeaStage.IMPLEMENTATION,
    (IdeaStage.IMPLEMENTATION, Action.APPROVE): IdeaStage.COMPLETED,
}
for _review_stage in (IdeaStage.MANAGER_REVIEW, IdeaStage.SME_REVIEW, IdeaStage.BOARD_REVIEW):
    _IDEA_TRANSITIONS[(_review_stage, Action.REQUEST_CHANGES)] = IdeaStage.DRAFT
    _IDEA_TRANSITIONS[(_review_stage, Action.REJECT)] = IdeaStage.DRAFT

IDEA_GRAPH = StageGraph(
    kind=SubmissionKind.IDEA,
    stage_type=IdeaStage,
    start=IdeaStage.DRAFT,
    order=tuple(IdeaStage),
    terminal=_IDEA_TERMINAL,
    editable=frozenset({IdeaStage.DRAFT}),
    reviewable=frozenset({IdeaStage.MANAGER_REVIEW, IdeaStage.SME_REVIEW, IdeaStage.BOARD_REVIEW}),
    transitions=_with_archive(_IDEA_TRANSITIONS, IdeaStage, _IDEA_TERMINAL, IdeaStage.ARCHIVED),
)

_CHALLENGE_TERMINAL = frozenset({ChallengeSubmissionStatus.WINNER, ChallengeSubmissionStatus.ARCHIVED})
_CHALLENGE_TRANSITIONS: dict[tuple[Stage, Action], Stage] = {
    (ChallengeSubmissionStatus.DRAFT, Action.SUBMIT): ChallengeSubmissionStatus.SUBMITTED,
    (ChallengeSubmissionStatus.DRAFT, Action.APPROVE): ChallengeSubmissionStatus.SUBMITTED,
    (ChallengeSubmissionStatus.SUBMITTED, Action.BEGIN_REVIEW): ChallengeSubmissionStatus.UNDER_REVIEW,
    (ChallengeSubmissionStatus.UNDER_REVIEW, Action.EVALUATE): ChallengeSubmissionStatus.EVALUATED,
    (ChallengeSubmissionStatus.UNDER_REVIEW, Action.REQUEST_CHANGES): ChallengeSubmissionStatus.DRAFT,
    (ChallengeSubmissionStatus.EVALUATED, Action.SELECT_WINNER): ChallengeSubmissionStatus.WINNER,
}

CHALLENGE_SUBMISSION_GRAPH = StageGraph(
    kind=SubmissionKind.CHALLENGE_SUBMISSION,
    stage_type=ChallengeSubmissionStatus,
    start=ChallengeSubmissionStatus.DRAFT,
    order=tuple(ChallengeSubmissionStatus),
    terminal=_CHALLENGE_TERMINAL,
    editable=frozenset({ChallengeSubmissionStatus.DRAFT, ChallengeSubmissionStatus.SUBMITTED}),
    reviewable=frozenset({ChallengeSubmissionStatus.UNDER_REVIEW}),
    transitions=_with_archive(
        _CHALLENGE_TRANSITIONS,
        ChallengeSubmissionStatus,
        _CHALLENGE_TERMINAL,
        ChallengeSubmissionStatus.ARCHIVED,
    ),
)

# Which fine-grained review stage an idea stage is reviewed at.
IDEA_REVIEW_STAGES: Mapping[IdeaStage, ReviewStage] = MappingProxyType(
    {
        IdeaStage.MANAGER_REVIEW: ReviewStage.MANAGER_REVIEW,
        IdeaStage.SME_REVIEW: ReviewStage.SME_REVIEW,
        IdeaStage.BOARD_REVIEW: ReviewStage.BOARD_REVIEW,
    }
)


class StageMachine:
    """Read-only lookup over the validated stage graphs."""

    def __init__(self, *graphs: StageGraph) -> None:
        self._graphs = {graph.kind: graph for graph in graphs}
        for graph in graphs:
            _validate_graph(graph)

    def graph(self, kind: SubmissionKind) -> StageGraph:
        return self._graphs[SubmissionKind(kind)]

    def parse_stage(self, kind: SubmissionKind, raw: str, *, submission_id: str = "") -> Stage:
        """Map a stored value onto the stage enum, failing with CorruptStateError."""
        graph = self.graph(kind)
        try:
            return graph.stage_type(raw)
        except ValueError as exc:
            raise CorruptStateError(SubmissionKind(kind).value, submission_id, str(raw)) from exc

    def coerce(self, kind: SubmissionKind, stage: Stage | str) -> Stage:
        return self.graph(kind).stage_type(stage)

    def can_transition(self, kind: SubmissionKind, stage: Stage, action: Action) -> Stage | None:
        return self.graph(kind).transitions.get((self.coerce(kind, stage), Action(action)))

    def require_transition(self, kind: SubmissionKind, stage: Stage, action: Action) -> Stage:
        target = self.can_transition(kind, stage, action)
        if target is None:
            raise InvalidTransitionError(SubmissionKind(kind).value, str(stage.value), Action(action).value)
        return target

    def is_terminal(self, kind: SubmissionKind, stage: Stage) -> bool:
        return self.coerce(kind, stage) in self.graph(kind).terminal

    def is_editable(self, kind: SubmissionKind, stage: Stage) -> bool:
        return self.coerce(kind, stage) in self.graph(kind).editable

    def is_reviewable(self, kind: SubmissionKind, stage: Stage) -> bool:
        return self.coerce(kind, stage) in self.graph(kind).reviewable

    def is_forward(self, kind: SubmissionKind, source: Stage, target: Stage) -> bool:
        graph = self.graph(kind)
        return graph.rank(self.coerce(kind, target)) > graph.rank(self.coerce(kind, source))

    def actions_from(self, kind: SubmissionKind, stage: Stage) -> list[Action]:
        return sorted(self.graph(kind).outgoing(stage), key=lambda action: action.value)

    def approval_path(self, kind: SubmissionKind) -> Iterator[tuple[Stage, Action, Stage]]:
        """Walk the happy path: submit from the start stage, then approve-like edges."""
        graph = self.graph(kind)
        stage = graph.start
        seen = {stage}
        preferred = (Action.SUBMIT, Action.APPROVE, Action.BEGIN_REVIEW, Action.EVALUATE, Action.SELECT_WINNER)
        while stage not in graph.terminal:
            edges = graph.outgoing(stage)
            action = next((candidate for candidate in preferred if candidate in edges), None)
            if action is None:
                return
            target = edges[action]
            if target in seen:
                return
            yield stage, action, target
            seen.add(target)
            stage = target


def _validate_graph(graph: StageGraph) -> None:
    stages = set(graph.stage_type)
    if graph.start not in stages or not graph.terminal <= stages:
        raise RuntimeError(f"{graph.kind.value}: start/terminal stages outside the stage set")
    if set(graph.order) != stages:
        raise RuntimeError(f"{graph.kind.value}: stage order must list every stage once")

    for (source, _action), target in graph.transitions.items():
        if source not in stages or target not in stages:
            raise RuntimeError(f"{graph.kind.value}: edge {source}->{target} leaves the stage set")

    for stage in stages:
        has_edges = bool(graph.outgoing(stage))
        if stage in graph.terminal and has_edges:
            raise RuntimeError(f"{graph.kind.value}: terminal stage '{stage.value}' has outgoing edges")
        if stage not in graph.terminal and not has_edges:
            raise RuntimeError(f"{graph.kind.value}: stage '{stage.value}' has no outgoing edge")

    reachable = {graph.start}
    frontier = [graph.start]
    while frontier:
        for target in graph.outgoing(frontier.pop()).values():
            if target not in reachable:
                reachable.add(target)
                frontier.append(target)
    unreachable = stages - reachable
    if unreachable:
        raise RuntimeError(
            f"{graph.kind.value}: unreachable stages {sorted(s.value for s in unreachable)}"
        )


STAGE_MACHINE = StageMachine(IDEA_GRAPH, CHALLENGE_SUBMISSION_GRAPH)
