from __future__ import annotations

import pytest
from src.core.auth import Role
from src.domain.roles import (
    REVIEW_PERMISSIONS,
    ROLE_PERMISSIONS,
    Permission,
    has_any_role,
    has_permission,
    has_role,
    resolve_capabilities,
)

from tests.utils import make_actor


def test_developer_holds_every_permission() -> None:
    assert resolve_capabilities([Role.DEVELOPER]) == frozenset(Permission)


def test_administrator_holds_everything_but_review_permissions() -> None:
    capabilities = resolve_capabilities([Role.ADMINISTRATOR])

    assert capabilities == frozenset(Permission) - REVIEW_PERMISSIONS
    assert not capabilities & REVIEW_PERMISSIONS


def test_no_roles_means_no_permissions() -> None:
    assert resolve_capabilities([]) == frozenset()
    assert make_actor("nobody").capabilities == frozenset()


def test_capabilities_are_the_union_of_role_permissions() -> None:
    capabilities = resolve_capabilities([Role.SME, Role.BOARD_MEMBER])

    assert Permission.REVIEW_SME_STAGE in capabilities
    assert Permission.REVIEW_BOARD_STAGE in capabilities
    assert Permission.REVIEW_MANAGER_STAGE not in capabilities


@pytest.mark.parametrize("role", list(Role))
def test_every_role_is_covered_by_developer(role: Role) -> None:
    assert ROLE_PERMISSIONS[role] <= ROLE_PERMISSIONS[Role.DEVELOPER]


def test_role_permission_table_is_read_only() -> None:
    with pytest.raises(TypeError):
        ROLE_PERMISSIONS[Role.USER] = frozenset(Permission)  # type: ignore[index]


def test_actor_capabilities_resolved_on_construction() -> None:
    actor = make_actor("manager-1", Role.MANAGER)

    assert has_permission(actor, Permission.ADVANCE_STATUS)
    assert has_permission(actor, Permission.REVIEW_MANAGER_STAGE)
    assert not has_permission(actor, Permission.REVIEW_SME_STAGE)
    assert has_role(actor, Role.MANAGER)
    assert has_any_role(actor, [Role.SME, Role.MANAGER])
    assert not has_any_role(actor, [Role.SME, Role.DEVELOPER])
