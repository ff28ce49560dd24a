"""
Role Permissions - Pure checks of (actor, action)
"""

from enum import Enum
from typing import Optional

from shotdesk.models.actor import ActorContext, Role
from shotdesk.models.version import Tier
from shotdesk.services.errors import PermissionDeniedError


class Action(str, Enum):
    """Actions gated by role"""

    VOTE = "vote"
    COMMENT = "comment"
    CREATE_VERSION = "create_version"
    EDIT_SEQUENCE = "edit_sequence"
    GENERATE = "generate"
    MANAGE_BACKGROUNDS = "manage_backgrounds"
    ASSIGN_PM = "assign_pm"
    ASSIGN_PE = "assign_pe"


# Which role owns each review slot
TIER_ROLES = {
    Tier.TIER1: Role.CD,
    Tier.TIER2: Role.PM,
    Tier.MASTER: Role.CD,
}

STRUCTURE_ROLES = frozenset({Role.PM, Role.CD})


def is_allowed(
    actor: ActorContext,
    action: Action,
    tier: Optional[Tier] = None,
    assignee_id: Optional[str] = None,
    project_pm_id: Optional[str] = None,
) -> bool:
    """
    Decide whether ``actor`` may perform ``action``

    Args:
        actor: Acting user
        action: Action being attempted
        tier: Review slot, for VOTE and COMMENT
        assignee_id: Shot assignee, for CREATE_VERSION
        project_pm_id: Project's tier-2 reviewer, for ASSIGN_PE

    Returns:
        True if permitted
    """
    if action in (Action.VOTE, Action.COMMENT):
        if tier is None:
            return False
        return TIER_ROLES[Tier(tier)] == actor.role

    if action == Action.CREATE_VERSION:
        if actor.role in STRUCTURE_ROLES:
            return True
        return actor.role == Role.PE and assignee_id is not None and assignee_id == actor.user_id

    if action == Action.EDIT_SEQUENCE:
        return actor.role in STRUCTURE_ROLES

    if action == Action.ASSIGN_PM:
        return actor.role == Role.CD

    if action == Action.ASSIGN_PE:
        # A PM staffs only the projects they manage
        if actor.role == Role.CD:
            return True
        return actor.role == Role.PM and project_pm_id is not None and project_pm_id == actor.user_id

    # Anyone with a role may generate or attach references
    return action in (Action.GENERATE, Action.MANAGE_BACKGROUNDS)


def require(
    actor: ActorContext,
    action: Action,
    tier: Optional[Tier] = None,
    assignee_id: Optional[str] = None,
    project_pm_id: Optional[str] = None,
) -> None:
    """
    Raise unless ``actor`` may perform ``action``

    Raises:
        PermissionDeniedError: Role does not allow the action
    """
    if not is_allowed(actor, action, tier=tier, assignee_id=assignee_id, project_pm_id=project_pm_id):
        target = f" on {Tier(tier).value}" if tier is not None else ""
        raise PermissionDeniedError(f"Role {actor.role.value} may not {action.value}{target}")
