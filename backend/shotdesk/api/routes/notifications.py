"""
Notification API Routes
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shotdesk.api.dependencies import get_actor
from shotdesk.models import get_db
from shotdesk.models.actor import ActorContext
from shotdesk.services.storage import NotificationDB


# Router
router = APIRouter()


@router.get("/notifications")
async def list_notifications(
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """
    Latest notifications of the acting user
    """
    notifications = NotificationDB.list_for_user(db, actor.user_id)
    return {
        "notifications": [n.to_dict() for n in notifications],
        "unread": sum(1 for n in notifications if not n.is_read),
    }


@router.post("/notifications/read")
async def mark_notifications_read(
    actor: ActorContext = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """
    Mark every unread notification of the acting user as read
    """
    return {"updated": NotificationDB.mark_all_read(db, actor.user_id)}
