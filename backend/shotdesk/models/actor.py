"""
Actor Context Model
"""

from enum import Enum
from pydantic import BaseModel, ConfigDict


class Role(str, Enum):
    """Crew roles"""

    PE = "PE"  # Production engineer, shot assignee
    PM = "PM"  # Project manager, tier-2 reviewer
    CD = "CD"  # Creative director, tier-1 and escalation reviewer


class ActorContext(BaseModel):
    """
    The acting user, passed explicitly into every state-changing call
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    role: Role
    email: str = ""

    @property
    def display_name(self) -> str:
        return self.email or self.user_id
