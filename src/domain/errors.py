"""Error taxonomy shared by the workflow services.

Policy decision functions never raise for a denial; these exceptions are raised
by the services that act on a decision.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for workflow failures."""


class NotFoundError(WorkflowError):
    """Raised when a submission, challenge or collaboration does not exist."""


class UnauthorizedError(WorkflowError):
    """Raised when the authorization policy denies an action.

    ``rule`` names the denying rule for audit and debugging. It is logged but
    never returned to the end actor.
    """

    def __init__(self, action: str, rule: str):
        super().__init__(f"Action '{action}' denied")
        self.action = action
        self.rule = rule


class InvalidTransitionError(WorkflowError):
    """Raised when the requested action has no edge from the current stage."""

    def __init__(self, kind: str, stage: str, action: str, reason: str | None = None):
        msg = f"Cannot '{action}' {kind} in stage '{stage}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.kind = kind
        self.stage = stage
        self.action = action
        self.reason = reason


class PreconditionFailedError(InvalidTransitionError):
    """Raised when a time or capacity precondition blocks the action."""


class ConflictError(WorkflowError):
    """Raised when the optimistic stage check fails due to a concurrent writer."""

    def __init__(self, submission_id: str, expected_stage: str, actual_stage: str | None = None):
        msg = f"Submission {submission_id} is no longer in stage '{expected_stage}'"
        if actual_stage is not None:
            msg += f" (now '{actual_stage}')"
        super().__init__(msg)
        self.submission_id = submission_id
        self.expected_stage = expected_stage
        self.actual_stage = actual_stage


class CorruptStateError(WorkflowError):
    """Raised when a stored stage value is outside the known stage set."""

    def __init__(self, kind: str, submission_id: str, raw_stage: str):
        super().__init__(f"{kind} {submission_id} has unknown stage '{raw_stage}'")
        self.kind = kind
        self.submission_id = submission_id
        self.raw_stage = raw_stage


class MissingRelatedEntityError(WorkflowError):
    """Raised when a decision needs a related entity that was not loaded."""


class DuplicateSubmissionError(WorkflowError):
    """Raised when a participant already has a submission for the challenge."""


class DuplicateCollaborationError(WorkflowError):
    """Raised when an open collaboration already links the collaborator."""
