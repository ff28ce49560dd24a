"""
Review API Routes - Versions, votes, comments, escalation and progress
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from shotdesk.api.dependencies import get_actor, get_review_machine
from shotdesk.models import get_db
from shotdesk.models.actor import ActorContext
from shotdesk.models.version import Tier
from shotdesk.services.errors import NotFoundError
from shotdesk.services.review_state import ReviewStateMachine, VoteOutcome
from shotdesk.services.review_status import master_listing, project_progress
from shotdesk.services.storage import ProjectDB, ShotDB, VersionDB


# Request/Response Models


class VersionCreateRequest(BaseModel):
    """Upload of a new artifact for a shot"""

    artifact_link: str = Field(..., min_length=1, description="Drive link of the uploaded artifact")
    public_link: Optional[str] = Field(None, description="Public storage link, if any")


class VoteRequest(BaseModel):
    """Tier-1 or tier-2 vote"""

    tier: Tier
    vote: bool


class CommentRequest(BaseModel):
    """Tier-1 or tier-2 feedback"""

    tier: Tier
    comment: str = ""
    attachment_url: Optional[str] = None


class MasterRejectRequest(BaseModel):
    """Escalation-tier rejection; the comment is checked by the state machine"""

    comment: str = ""
    attachment_url: Optional[str] = None


class VersionListResponse(BaseModel):
    shot_id: str
    active_version_id: Optional[str] = None
    versions: List[Dict[str, Any]]


# Router
router = APIRouter()


@router.get("/shots/{shot_id}/versions", response_model=VersionListResponse)
async def list_versions(
    shot_id: str,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """
    List a shot's versions (newest first) with their reviews
    """
    if ShotDB.get_shot(db, shot_id) is None:
        raise NotFoundError(f"Shot not found: {shot_id}")

    versions = []
    active_id = None
    for version in VersionDB.list_for_shot(db, shot_id):
        review = VersionDB.get_review_for_version(db, version.id)
        data = version.to_dict()
        data["review"] = review.to_dict() if review else None
        versions.append(data)
        if version.is_active:
            active_id = version.id
    return VersionListResponse(shot_id=shot_id, active_version_id=active_id, versions=versions)


@router.post("/shots/{shot_id}/versions", status_code=status.HTTP_201_CREATED)
async def create_version(
    shot_id: str,
    request: VersionCreateRequest,
    actor: ActorContext = Depends(get_actor),
    machine: ReviewStateMachine = Depends(get_review_machine),
):
    """
    Record an uploaded artifact as the shot's next version
    """
    version = machine.create_version(actor, shot_id, request.artifact_link, request.public_link)
    review = VersionDB.get_review_for_version(machine.db, version.id)
    data = version.to_dict()
    data["review"] = review.to_dict() if review else None
    return data


@router.post("/reviews/{review_id}/votes", response_model=VoteOutcome)
async def cast_vote(
    review_id: str,
    request: VoteRequest,
    actor: ActorContext = Depends(get_actor),
    machine: ReviewStateMachine = Depends(get_review_machine),
):
    """
    Cast a tier vote; a positive vote activates and publishes the version
    """
    return await machine.cast_vote(actor, review_id, request.tier, request.vote)


@router.put("/reviews/{review_id}/comments")
async def save_comment(
    review_id: str,
    request: CommentRequest,
    actor: ActorContext = Depends(get_actor),
    machine: ReviewStateMachine = Depends(get_review_machine),
):
    """
    Save tier feedback without touching the vote
    """
    review = machine.save_comment(
        actor,
        review_id,
        request.tier,
        request.comment,
        attachment_url=request.attachment_url,
    )
    return review.to_dict()


@router.post("/versions/{version_id}/master/approve", response_model=VoteOutcome)
async def master_approve(
    version_id: str,
    actor: ActorContext = Depends(get_actor),
    machine: ReviewStateMachine = Depends(get_review_machine),
):
    """
    Approve a version at the escalation tier
    """
    return await machine.master_approve(actor, version_id)


@router.post("/versions/{version_id}/master/reject")
async def master_reject(
    version_id: str,
    request: MasterRejectRequest,
    actor: ActorContext = Depends(get_actor),
    machine: ReviewStateMachine = Depends(get_review_machine),
):
    """
    Reject a version at the escalation tier (comment required)
    """
    review = machine.master_reject(
        actor,
        version_id,
        request.comment,
        attachment_url=request.attachment_url,
    )
    return review.to_dict()


@router.get("/projects/{project_id}/master")
async def get_master_listing(
    project_id: str,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """
    Approved active versions of a project, ready for the escalation tier
    """
    if ProjectDB.get_project(db, project_id) is None:
        raise NotFoundError(f"Project not found: {project_id}")
    return {"project_id": project_id, "shots": master_listing(db, project_id)}


@router.get("/projects/{project_id}/progress")
async def get_progress(
    project_id: str,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """
    Per-scene completion as seen by the acting role
    """
    if ProjectDB.get_project(db, project_id) is None:
        raise NotFoundError(f"Project not found: {project_id}")
    return {"project_id": project_id, "scenes": project_progress(db, project_id, actor)}
