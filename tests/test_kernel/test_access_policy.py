"""
Tests for the access policies evaluated at the write boundary
"""

import pytest

from petagri_procurement.kernel.access_policy import (
    AccessRequest,
    Action,
    AllowAllPolicy,
    RoleTablePolicy,
    enforce,
)
from petagri_procurement.kernel.errors import PermissionDenied


def request(action: Action, *roles: str) -> AccessRequest:
    return AccessRequest(
        resource="assignment-1",
        action=action,
        actor_id="user-1",
        actor_roles=frozenset(roles),
    )


def test_allow_all_allows_anyone() -> None:
    decision = AllowAllPolicy().evaluate(request(Action.APPROVE_OFFERING))
    assert decision.allowed


@pytest.mark.parametrize(
    "action,roles,allowed",
    [
        (Action.CREATE_ASSIGNMENT, {"admin_platform"}, True),
        (Action.CREATE_ASSIGNMENT, {"mitra_toko"}, False),
        (Action.SUBMIT_OFFERING, {"mitra_toko"}, True),
        (Action.APPROVE_OFFERING, {"owner_platform"}, True),
        (Action.APPROVE_OFFERING, {"mitra_toko"}, False),
        (Action.ISSUE_DELIVERY_NOTE, {"developer"}, True),
        (Action.REPLACE_LINE_ITEMS, set(), False),
    ],
)
def test_role_table_defaults(action: Action, roles: set[str], allowed: bool) -> None:
    assert RoleTablePolicy().evaluate(request(action, *roles)).allowed is allowed


def test_role_names_are_normalized() -> None:
    assert RoleTablePolicy().evaluate(request(Action.SUBMIT_OFFERING, " Mitra_Toko ")).allowed


def test_custom_grants() -> None:
    policy = RoleTablePolicy({Action.APPROVE_OFFERING: ["procurement_lead"]})

    assert policy.evaluate(request(Action.APPROVE_OFFERING, "procurement_lead")).allowed
    # Actions missing from the table are denied to everyone
    assert not policy.evaluate(request(Action.SUBMIT_OFFERING, "mitra_toko")).allowed


def test_enforce_raises_permission_denied() -> None:
    with pytest.raises(PermissionDenied) as exc_info:
        enforce(RoleTablePolicy(), request(Action.APPROVE_OFFERING, "mitra_toko"))

    assert exc_info.value.reason == "permission_denied"
    assert exc_info.value.action == "approval:create"
    assert "admin_platform" in str(exc_info.value)
