"""Role model: resolves the capability set held by an actor.

Roles form a flat set. Hierarchy is expressed only through permission overlap,
so policies test capability membership and never compare roles to each other.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from types import MappingProxyType

from src.core.auth import Role


class Permission(str, Enum):
    CREATE_SUBMISSION = "create_submission"
    CREATE_CHALLENGE = "create_challenge"
    EDIT_ANY_CHALLENGE = "edit_any_challenge"
    MANAGE_OWN_CHALLENGE = "manage_own_challenge"
    PUBLISH_CHALLENGE = "publish_challenge"
    EDIT_ANY_SUBMISSION = "edit_any_submission"
    ADVANCE_STATUS = "advance_status"
    REVIEW_MANAGER_STAGE = "review_manager_stage"
    REVIEW_SME_STAGE = "review_sme_stage"
    REVIEW_BOARD_STAGE = "review_board_stage"
    REVIEW_CHALLENGE_STAGE = "review_challenge_stage"
    SELECT_WINNERS = "select_winners"
    EXPORT_DATA = "export_data"
    VIEW_ANALYTICS = "view_analytics"
    VIEW_ALL_SUBMISSIONS = "view_all_submissions"
    ASSIGN_REVIEWERS = "assign_reviewers"
    MANAGE_COLLABORATION = "manage_collaboration"
    ARCHIVE_SUBMISSIONS = "archive_submissions"


REVIEW_PERMISSIONS = frozenset(
    {
        Permission.REVIEW_MANAGER_STAGE,
        Permission.REVIEW_SME_STAGE,
        Permission.REVIEW_BOARD_STAGE,
        Permission.REVIEW_CHALLENGE_STAGE,
    }
)

_OPERATIONS = frozenset(
    {
        Permission.ADVANCE_STATUS,
        Permission.SELECT_WINNERS,
        Permission.EXPORT_DATA,
        Permission.VIEW_ANALYTICS,
        Permission.VIEW_ALL_SUBMISSIONS,
        Permission.ASSIGN_REVIEWERS,
        Permission.MANAGE_COLLABORATION,
    }
)

ROLE_PERMISSIONS: Mapping[Role, frozenset[Permission]] = MappingProxyType(
    {
        Role.USER: frozenset({Permission.CREATE_SUBMISSION}),
        Role.MANAGER: frozenset(
            {
                Permission.CREATE_SUBMISSION,
                Permission.CREATE_CHALLENGE,
                Permission.MANAGE_OWN_CHALLENGE,
                Permission.REVIEW_MANAGER_STAGE,
            }
            | _OPERATIONS
        ),
        Role.SME: frozenset(
            {
                Permission.CREATE_SUBMISSION,
                Permission.REVIEW_SME_STAGE,
                Permission.VIEW_ALL_SUBMISSIONS,
            }
        ),
        Role.CHALLENGE_REVIEWER: frozenset(
            {
                Permission.CREATE_SUBMISSION,
                Permission.REVIEW_SME_STAGE,
                Permission.REVIEW_CHALLENGE_STAGE,
                Permission.VIEW_ALL_SUBMISSIONS,
            }
        ),
        Role.IDEA_REVIEWER: frozenset(
            {Permission.CREATE_SUBMISSION, Permission.VIEW_ALL_SUBMISSIONS}
        ),
        Role.BOARD_MEMBER: frozenset(
            {Permission.CREATE_SUBMISSION, Permission.REVIEW_BOARD_STAGE}
        ),
        # Broad, but review permissions stay with the domain reviewer roles.
        Role.ADMINISTRATOR: frozenset(Permission) - REVIEW_PERMISSIONS,
        Role.DEVELOPER: frozenset(Permission),
    }
)


def _validate_role_permissions() -> None:
    missing_roles = set(Role) - set(ROLE_PERMISSIONS)
    if missing_roles:
        raise RuntimeError(f"Roles without a permission set: {sorted(r.value for r in missing_roles)}")

    granted = frozenset().union(*ROLE_PERMISSIONS.values())
    if not granted <= ROLE_PERMISSIONS[Role.DEVELOPER]:
        raise RuntimeError("developer must hold every permission granted to any role")


_validate_role_permissions()


def resolve_capabilities(roles: Iterable[Role]) -> frozenset[Permission]:
    """Union of the permissions of every role. No roles means no permissions."""
    capabilities: frozenset[Permission] = frozenset()
    for role in roles:
        capabilities |= ROLE_PERMISSIONS.get(Role(role), frozenset())
    return capabilities


def has_role(actor, role: Role) -> bool:
    return Role(role) in actor.roles


def has_any_role(actor, roles: Iterable[Role]) -> bool:
    return any(Role(role) in actor.roles for role in roles)


def has_permission(actor, permission: Permission) -> bool:
    return permission in actor.capabilities
