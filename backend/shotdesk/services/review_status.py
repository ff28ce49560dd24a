"""
Review Status - Derived shot colours, assignment states, progress and the master listing
"""

import math
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from shotdesk.models.actor import ActorContext, Role
from shotdesk.models.version import ReviewModel
from shotdesk.services.storage import ProjectDB, ShotDB, UserDB, VersionDB


class ShotColor(str, Enum):
    GRAY = "gray"  # no active version
    GREEN = "green"  # tier 1 approved
    RED = "red"  # a tier rejected
    YELLOW = "yellow"  # waiting


class AssignmentStatus(str, Enum):
    NOT_STARTED = "Not Started"
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


def shot_color(review: Optional[ReviewModel]) -> ShotColor:
    """Colour of a shot given the review of its active version (None if there is none)"""
    if review is None:
        return ShotColor.GRAY
    if review.tier1_vote is True:
        return ShotColor.GREEN
    if review.tier1_vote is False or review.tier2_vote is False:
        return ShotColor.RED
    return ShotColor.YELLOW


def assignment_status(review: Optional[ReviewModel]) -> AssignmentStatus:
    """Assignee-facing status; tier 1 decides first, then tier 2"""
    if review is None:
        return AssignmentStatus.NOT_STARTED
    for vote in (review.tier1_vote, review.tier2_vote):
        if vote is True:
            return AssignmentStatus.APPROVED
        if vote is False:
            return AssignmentStatus.REJECTED
    return AssignmentStatus.PENDING


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def progress_percent(role: Role, reviews: Sequence[Optional[ReviewModel]]) -> int:
    """
    Completion percentage over a set of shots

    The PM counts tier-1 approvals only. Other roles count tier-1 plus
    tier-2 approvals, so one shot approved on both tiers counts twice; the
    total is clamped at 100.

    Args:
        role: Role of the viewer
        reviews: Active-version review per shot (None for shots without one)

    Returns:
        Integer percentage (0 when there are no shots)
    """
    total = len(reviews)
    if total == 0:
        return 0

    tier1 = sum(1 for r in reviews if r is not None and r.tier1_vote is True)
    if role == Role.PM:
        return _round_half_up(tier1 / total * 100)

    tier2 = sum(1 for r in reviews if r is not None and r.tier2_vote is True)
    return min(100, _round_half_up((tier1 + tier2) / total * 100))


def natural_key(value: str) -> List[Any]:
    """Sort key treating digit runs as numbers ("Shot_2" < "Shot_10")"""
    return [int(part) if part.isdigit() else part.lower() for part in re.split(r"(\d+)", value or "")]


def qualifies_for_master(review: Optional[ReviewModel]) -> bool:
    """Shown on the master listing: tier 1 approved, or tier 1 silent and tier 2 approved"""
    if review is None:
        return False
    return review.tier1_vote is True or (review.tier1_vote is None and review.tier2_vote is True)


def active_review(db: Session, shot_id: str):
    version = VersionDB.get_active(db, shot_id)
    if version is None:
        return None, None
    return version, VersionDB.get_review_for_version(db, version.id)


def master_listing(db: Session, project_id: str) -> List[Dict[str, Any]]:
    """
    Active versions of a project eligible for the escalation tier

    Returns:
        Rows of {scene, shot, version, review}, naturally sorted by scene then shot name
    """
    scenes = {scene.id: scene for scene in ProjectDB.list_scenes(db, project_id)}
    rows = []
    for shot in ShotDB.list_for_project(db, project_id):
        version, review = active_review(db, shot.id)
        if version is None or not qualifies_for_master(review):
            continue
        scene = scenes[shot.scene_id]
        rows.append(
            {
                "scene": scene.to_dict(),
                "shot": shot.to_dict(),
                "version": version.to_dict(),
                "review": review.to_dict(),
            }
        )
    rows.sort(key=lambda row: (natural_key(row["scene"]["name"]), natural_key(row["shot"]["name"])))
    return rows


def project_progress(db: Session, project_id: str, actor: ActorContext) -> List[Dict[str, Any]]:
    """
    Per-scene completion for the completion-status view

    Progress is computed over every shot of the scene; a PE only sees their
    own shots listed, and scenes with nothing to list are omitted.
    """
    emails = {}
    result = []
    for scene in ProjectDB.list_scenes(db, project_id):
        shots = ShotDB.list_visible(db, scene.id)
        details = []
        reviews = []
        for shot in shots:
            _, review = active_review(db, shot.id)
            reviews.append(review)
            if shot.assigned_pe_id and shot.assigned_pe_id not in emails:
                user = UserDB.get_user(db, shot.assigned_pe_id)
                emails[shot.assigned_pe_id] = user.email if user else None
            details.append(
                {
                    "id": shot.id,
                    "name": shot.name,
                    "assigned_pe_id": shot.assigned_pe_id,
                    "assignee_email": emails.get(shot.assigned_pe_id) or "Unassigned",
                    "tier1_vote": review.tier1_vote if review else None,
                    "tier2_vote": review.tier2_vote if review else None,
                    "color": shot_color(review).value,
                    "status": assignment_status(review).value,
                }
            )

        if actor.role == Role.PE:
            details = [d for d in details if d["assigned_pe_id"] == actor.user_id]
        if not details:
            continue

        result.append(
            {
                "scene": scene.to_dict(),
                "progress": progress_percent(actor.role, reviews),
                "shots": details,
            }
        )
    return result
