"""
Assignment API Routes - Project managers, shot assignees and the assignee's work list
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from shotdesk.api.dependencies import get_actor
from shotdesk.models import get_db
from shotdesk.models.actor import ActorContext
from shotdesk.services.assignments import AssignmentService
from shotdesk.services.review_status import AssignmentStatus


# Request Models


class PMAssignmentRequest(BaseModel):
    """Tier-2 reviewer of a project; null unassigns"""

    pm_id: Optional[str] = None


class PEAssignmentRequest(BaseModel):
    """Bulk assignment of shots to one PE; null unassigns"""

    shot_ids: List[str] = Field(..., min_length=1)
    pe_id: Optional[str] = None


def _service(db: Session = Depends(get_db)) -> AssignmentService:
    return AssignmentService(db)


# Router
router = APIRouter()


@router.get("/projects")
async def list_projects(
    actor: ActorContext = Depends(get_actor),
    service: AssignmentService = Depends(_service),
):
    """
    Projects the acting user can staff
    """
    return {"projects": [project.to_dict() for project in service.list_projects(actor)]}


@router.put("/projects/{project_id}/pm")
async def assign_project_manager(
    project_id: str,
    request: PMAssignmentRequest,
    actor: ActorContext = Depends(get_actor),
    service: AssignmentService = Depends(_service),
):
    """
    Set the project's tier-2 reviewer (CD only)
    """
    return service.assign_pm(actor, project_id, request.pm_id).to_dict()


@router.put("/projects/{project_id}/assignments")
async def assign_shots(
    project_id: str,
    request: PEAssignmentRequest,
    actor: ActorContext = Depends(get_actor),
    service: AssignmentService = Depends(_service),
):
    """
    Assign shots of the project to a PE (CD, or the project's PM)
    """
    updated = service.assign_pe(actor, project_id, request.shot_ids, request.pe_id)
    return {"project_id": project_id, "pe_id": request.pe_id, "updated": updated}


@router.get("/assignments")
async def list_my_assignments(
    status: Optional[AssignmentStatus] = Query(None, description="Only shots in this review status"),
    actor: ActorContext = Depends(get_actor),
    service: AssignmentService = Depends(_service),
):
    """
    Shots assigned to the acting user across every project
    """
    return {"assignments": service.my_assignments(actor, status=status)}
