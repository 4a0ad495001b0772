"""Role vocabulary and the enumerations stored on OKR entities."""

from __future__ import annotations

from typing import Literal, cast

RoleType = Literal["corporativo", "gerente", "empleado"]

ROLE_TYPES: tuple[RoleType, ...] = ("corporativo", "gerente", "empleado")
# Roles that may send invitations and manage departments
MANAGER_ROLES: tuple[RoleType, ...] = ("corporativo", "gerente")

OBJECTIVE_STATUSES = ("draft", "in_progress", "completed", "cancelled")
INITIATIVE_STATUSES = ("planning", "in_progress", "completed", "cancelled")
ACTIVITY_STATUSES = ("todo", "in_progress", "completed", "cancelled")
PRIORITIES = ("low", "medium", "high")
INVITATION_STATUSES = ("pending", "accepted", "expired", "revoked")
ONBOARDING_STATUSES = ("in_progress", "completed", "abandoned")
ONBOARDING_STEPS = ("create_org", "accept_invite", "complete_profile")

# Granted to every profile that joins a company
MEMBER_PERMISSION = "okr:member"


def to_role(value: object) -> RoleType | None:
    if isinstance(value, str) and value.strip().lower() in ROLE_TYPES:
        return cast(RoleType, value.strip().lower())
    return None


def can_invite_role(inviter: RoleType, invitee: RoleType) -> bool:
    if inviter == "corporativo":
        return True
    if inviter == "gerente":
        return invitee != "corporativo"
    return False


__all__ = [
    "RoleType",
    "ROLE_TYPES",
    "MANAGER_ROLES",
    "OBJECTIVE_STATUSES",
    "INITIATIVE_STATUSES",
    "ACTIVITY_STATUSES",
    "PRIORITIES",
    "INVITATION_STATUSES",
    "ONBOARDING_STATUSES",
    "ONBOARDING_STEPS",
    "MEMBER_PERMISSION",
    "to_role",
    "can_invite_role",
]
