"""
Shot API Routes - Ordering, trash and background references
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from shotdesk.api.dependencies import get_actor
from shotdesk.models import get_db
from shotdesk.models.actor import ActorContext
from shotdesk.services.errors import NotFoundError
from shotdesk.services.permissions import Action, require
from shotdesk.services.sequence_manager import SequenceManager
from shotdesk.services.storage import ProjectDB, ShotDB


# Request Models


class ShotCreateRequest(BaseModel):
    """Optional fields of a new shot; name and sequence are derived"""

    folder_id: Optional[str] = None
    assigned_pe_id: Optional[str] = None
    storyboard_url: Optional[str] = None
    style_url: Optional[str] = None


class ShotInsertRequest(ShotCreateRequest):
    position: int = Field(..., ge=0, description="Sequence the new shot takes")


class ReorderRequest(BaseModel):
    shot_ids: List[str]


class BackgroundReferenceRequest(BaseModel):
    url: str = Field(..., min_length=1)


def _manager(db: Session = Depends(get_db)) -> SequenceManager:
    return SequenceManager(db)


# Router
router = APIRouter()


@router.get("/scenes/{scene_id}/shots")
async def list_shots(
    scene_id: str,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db),
    manager: SequenceManager = Depends(_manager),
):
    """
    Visible shots in sequence order, plus the scene's trash

    Trashed shots past retention are purged first.
    """
    if ProjectDB.get_scene(db, scene_id) is None:
        raise NotFoundError(f"Scene not found: {scene_id}")
    manager.purge_expired(scene_id)
    trash = []
    for shot in ShotDB.list_deleted(db, scene_id):
        data = shot.to_dict()
        data["days_remaining"] = manager.days_remaining(shot)
        trash.append(data)
    return {
        "scene_id": scene_id,
        "shots": [shot.to_dict() for shot in ShotDB.list_visible(db, scene_id)],
        "trash": trash,
    }


@router.post("/scenes/{scene_id}/shots", status_code=status.HTTP_201_CREATED)
async def append_shot(
    scene_id: str,
    request: ShotCreateRequest,
    actor: ActorContext = Depends(get_actor),
    manager: SequenceManager = Depends(_manager),
):
    """
    Add a shot at the end of the scene
    """
    shot = manager.append(actor, scene_id, **request.model_dump(exclude_none=True))
    return shot.to_dict()


@router.post("/scenes/{scene_id}/shots/insert", status_code=status.HTTP_201_CREATED)
async def insert_shot(
    scene_id: str,
    request: ShotInsertRequest,
    actor: ActorContext = Depends(get_actor),
    manager: SequenceManager = Depends(_manager),
):
    """
    Insert a shot at a position, shifting later shots down
    """
    fields = request.model_dump(exclude_none=True, exclude={"position"})
    shot = manager.insert_before(actor, scene_id, request.position, **fields)
    return shot.to_dict()


@router.put("/scenes/{scene_id}/order")
async def reorder_shots(
    scene_id: str,
    request: ReorderRequest,
    actor: ActorContext = Depends(get_actor),
    manager: SequenceManager = Depends(_manager),
):
    """
    Apply a full new order of the scene's visible shots
    """
    shots = manager.reorder(actor, scene_id, request.shot_ids)
    return {"scene_id": scene_id, "shots": [shot.to_dict() for shot in shots]}


@router.delete("/shots/{shot_id}")
async def delete_shot(
    shot_id: str,
    actor: ActorContext = Depends(get_actor),
    manager: SequenceManager = Depends(_manager),
):
    """
    Move a shot to the trash
    """
    shot = manager.soft_delete(actor, shot_id)
    data = shot.to_dict()
    data["days_remaining"] = manager.days_remaining(shot)
    return data


@router.post("/shots/{shot_id}/restore")
async def restore_shot(
    shot_id: str,
    actor: ActorContext = Depends(get_actor),
    manager: SequenceManager = Depends(_manager),
):
    """
    Restore a trashed shot at the end of its scene
    """
    return manager.restore(actor, shot_id).to_dict()


@router.post("/shots/{shot_id}/backgrounds")
async def add_background_reference(
    shot_id: str,
    request: BackgroundReferenceRequest,
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """
    Keep a background image (e.g. picked from a background grid) as a shot reference
    """
    require(actor, Action.MANAGE_BACKGROUNDS)
    shot = ShotDB.get_shot(db, shot_id)
    if shot is None or shot.is_deleted:
        raise NotFoundError(f"Shot not found: {shot_id}")
    shot = ShotDB.add_background_reference(db, shot_id, request.url)
    return shot.to_dict()
