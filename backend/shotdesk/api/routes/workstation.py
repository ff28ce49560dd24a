"""
Workstation API Routes - Generation tracking for an open shot
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Response, status
from pydantic import BaseModel, TypeAdapter
from sqlalchemy.orm import Session

from shotdesk.api.dependencies import (
    get_actor,
    get_rate_limiter,
    get_registry,
    get_review_machine,
)
from shotdesk.models import get_db
from shotdesk.models.actor import ActorContext
from shotdesk.models.generation import BackgroundGridGeneration, GenerationRequest
from shotdesk.services.errors import NotFoundError
from shotdesk.services.observability import logger
from shotdesk.services.permissions import Action, require
from shotdesk.services.rate_limiter import RateLimiter
from shotdesk.services.review_state import ReviewStateMachine
from shotdesk.services.storage import ShotDB
from shotdesk.services.workstation import WorkstationRegistry, WorkstationSession


# Request/Response Models


class WorkstationResponse(BaseModel):
    """Open workstation session"""

    session_id: str
    shot_id: str
    polling: bool
    generations: List[Dict[str, Any]]


class GenerationListResponse(BaseModel):
    """Merged generation view"""

    shot_id: str
    has_pending: bool
    polling: bool
    generations: List[Dict[str, Any]]
    errors: List[str] = []


class GenerationSubmitResponse(BaseModel):
    """Accepted generation, or background-grid URLs"""

    job: Optional[Dict[str, Any]] = None
    urls: List[str] = []


_request_adapter = TypeAdapter(GenerationRequest)


def _list_response(session: WorkstationSession) -> GenerationListResponse:
    return GenerationListResponse(
        shot_id=session.shot_id,
        has_pending=session.tracker.has_pending(),
        polling=session.polling,
        generations=[job.to_dict() for job in session.tracker.jobs],
        errors=[error.message for error in session.tracker.drain_errors()],
    )


# Router
router = APIRouter()


@router.post(
    "/shots/{shot_id}/workstation",
    response_model=WorkstationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def open_workstation(
    shot_id: str,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db),
    registry: WorkstationRegistry = Depends(get_registry),
):
    """
    Open a workstation session for a shot and load its generations
    """
    shot = ShotDB.get_shot(db, shot_id)
    if shot is None or shot.is_deleted:
        raise NotFoundError(f"Shot not found: {shot_id}")

    session = await registry.open(actor, shot_id)
    return WorkstationResponse(
        session_id=session.id,
        shot_id=shot_id,
        polling=session.polling,
        generations=[job.to_dict() for job in session.tracker.jobs],
    )


@router.delete("/workstation/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_workstation(
    session_id: str,
    actor: ActorContext = Depends(get_actor),
    registry: WorkstationRegistry = Depends(get_registry),
):
    """
    Tear down a workstation session (stops its poller)
    """
    registry.close(session_id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/workstation/{session_id}/generations", response_model=GenerationListResponse)
async def list_generations(
    session_id: str,
    refresh: bool = False,
    actor: ActorContext = Depends(get_actor),
    registry: WorkstationRegistry = Depends(get_registry),
):
    """
    Current merged generation view; ``refresh=true`` reconciles with the service first
    """
    session = registry.get(session_id, actor)
    if refresh:
        await session.tracker.refresh()
        session.ensure_polling()
    return _list_response(session)


@router.post(
    "/workstation/{session_id}/generations",
    response_model=GenerationSubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_generation(
    session_id: str,
    payload: Dict[str, Any] = Body(...),
    actor: ActorContext = Depends(get_actor),
    registry: WorkstationRegistry = Depends(get_registry),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
):
    """
    Submit a generation request of any mode

    Tracked modes answer once the service has accepted the job; background
    grids answer with the generated URLs.
    """
    session = registry.get(session_id, actor)
    require(actor, Action.GENERATE)
    request = _request_adapter.validate_python(
        {**payload, "shot_id": session.shot_id, "user_email": actor.email}
    )
    rate_limiter.enforce(actor.user_id)

    logger.info(
        "generation_request",
        session_id=session_id,
        shot_id=session.shot_id,
        mode=request.mode,
        user_id=actor.user_id,
    )

    if isinstance(request, BackgroundGridGeneration):
        urls = await session.background_grid(request)
        return GenerationSubmitResponse(urls=urls)

    job = await session.generate_and_confirm(request)
    return GenerationSubmitResponse(job=job.to_dict())


@router.post(
    "/workstation/{session_id}/generations/{job_id}/retry",
    response_model=GenerationSubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def retry_generation(
    session_id: str,
    job_id: str,
    actor: ActorContext = Depends(get_actor),
    registry: WorkstationRegistry = Depends(get_registry),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
):
    """
    Restore a job's settings and submit them as a new job
    """
    session = registry.get(session_id, actor)
    require(actor, Action.GENERATE)
    rate_limiter.enforce(actor.user_id)
    job = await session.retry(job_id)
    return GenerationSubmitResponse(job=job.to_dict())


@router.post(
    "/workstation/{session_id}/generations/{job_id}/promote",
    status_code=status.HTTP_201_CREATED,
)
async def promote_generation(
    session_id: str,
    job_id: str,
    actor: ActorContext = Depends(get_actor),
    registry: WorkstationRegistry = Depends(get_registry),
    machine: ReviewStateMachine = Depends(get_review_machine),
):
    """
    Promote a completed generation to a new version of the shot
    """
    session = registry.get(session_id, actor)
    job = session.tracker.get(job_id)
    if job is None:
        raise NotFoundError(f"Unknown generation job: {job_id}")
    version = machine.promote_generation(actor, session.shot_id, job)
    return version.to_dict()
