"""
Access policy evaluated at the boundary of every write operation

Authentication happens elsewhere; by the time a request reaches the core the
caller's id and roles are known. The policy only answers "may this actor do
this action on this resource?".
"""

from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Protocol

from pydantic import BaseModel, Field

from petagri_procurement.kernel.errors import PermissionDenied


class Action(str, Enum):
    CREATE_ASSIGNMENT = "assignment:create"
    REPLACE_LINE_ITEMS = "assignment:replace_items"
    SUBMIT_OFFERING = "offering:submit"
    APPROVE_OFFERING = "approval:create"
    ISSUE_DELIVERY_NOTE = "delivery:issue"


class AccessRequest(BaseModel):
    resource: str = Field(..., description="Id of the assignment acted upon, or 'assignment' for creation")
    action: Action
    actor_id: str
    actor_roles: frozenset[str] = frozenset()

    model_config = {"frozen": True}


class AccessDecision(BaseModel):
    allowed: bool
    reason: str = ""

    model_config = {"frozen": True}


class AccessPolicy(Protocol):
    def evaluate(self, request: AccessRequest) -> AccessDecision:
        ...


class AllowAllPolicy:
    """Callers are already authorised upstream"""

    def evaluate(self, request: AccessRequest) -> AccessDecision:
        return AccessDecision(allowed=True, reason="allow_all")


PLATFORM_ROLES = frozenset({"owner_platform", "developer", "admin_platform"})
PARTNER_ROLES = frozenset({"mitra_toko"})

DEFAULT_GRANTS: dict[Action, frozenset[str]] = {
    Action.CREATE_ASSIGNMENT: PLATFORM_ROLES,
    Action.REPLACE_LINE_ITEMS: PLATFORM_ROLES,
    Action.SUBMIT_OFFERING: PLATFORM_ROLES | PARTNER_ROLES,
    Action.APPROVE_OFFERING: PLATFORM_ROLES,
    Action.ISSUE_DELIVERY_NOTE: PLATFORM_ROLES,
}


def normalize_roles(roles: Iterable[str]) -> frozenset[str]:
    return frozenset(str(r).strip().lower() for r in roles if str(r).strip())


class RoleTablePolicy:
    """
    Allow an action when the actor holds any role granted for it

    Example:
        >>> policy = RoleTablePolicy()
        >>> policy.evaluate(AccessRequest(
        ...     resource="a-1", action=Action.APPROVE_OFFERING,
        ...     actor_id="u-1", actor_roles=frozenset({"mitra_toko"}),
        ... )).allowed
        False
    """

    def __init__(self, grants: Mapping[Action, Iterable[str]] | None = None) -> None:
        source = DEFAULT_GRANTS if grants is None else grants
        self.grants = {Action(a): normalize_roles(r) for a, r in source.items()}

    def evaluate(self, request: AccessRequest) -> AccessDecision:
        allowed_roles = self.grants.get(request.action, frozenset())
        held = normalize_roles(request.actor_roles)
        if held & allowed_roles:
            return AccessDecision(allowed=True, reason="role_granted")
        return AccessDecision(
            allowed=False,
            reason=f"requires one of: {', '.join(sorted(allowed_roles)) or 'nobody'}",
        )


def enforce(policy: AccessPolicy, request: AccessRequest) -> None:
    """Raise PermissionDenied unless the policy allows the request"""
    decision = policy.evaluate(request)
    if not decision.allowed:
        raise PermissionDenied(request.actor_id, request.action.value, decision.reason)
