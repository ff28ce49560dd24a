"""
Notification Router - Who hears about a review transition, and best-effort delivery
"""

from enum import Enum
from typing import Callable, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shotdesk.config.constants import SHOT_LINK_TEMPLATE
from shotdesk.models import SessionLocal
from shotdesk.models.actor import ActorContext, Role
from shotdesk.models.shot import ShotModel
from shotdesk.services.observability import log_notification_failure, logger
from shotdesk.services.storage import NotificationDB, ProjectDB, UserDB


class NotificationAction(str, Enum):
    NEW_VERSION = "new_version"
    REVIEW = "review"
    VOTE_REJECTED = "vote_rejected"


class NotificationContext(BaseModel):
    """The slice of the role/assignment graph a notification depends on"""

    shot_id: str
    shot_path: str  # project/scene/shot
    assignee_id: Optional[str] = None
    tier2_user_id: Optional[str] = None  # project PM
    tier1_user_ids: List[str] = Field(default_factory=list)  # every CD


def recipients(
    action: NotificationAction,
    actor: ActorContext,
    context: NotificationContext,
) -> List[str]:
    """
    Derive the recipient set for an action

    - new_version: the project's PM and every CD, minus the actor
    - review: the shot assignee, minus the actor
    - vote_rejected: the shot assignee, even when it is the actor

    Returns:
        User ids in delivery order, without duplicates
    """
    if action == NotificationAction.NEW_VERSION:
        candidates = [context.tier2_user_id, *context.tier1_user_ids]
        targets = [user_id for user_id in candidates if user_id and user_id != actor.user_id]
    elif action == NotificationAction.REVIEW:
        targets = [context.assignee_id] if context.assignee_id and context.assignee_id != actor.user_id else []
    else:
        targets = [context.assignee_id] if context.assignee_id else []
    return list(dict.fromkeys(targets))


def build_message(
    action: NotificationAction,
    actor: ActorContext,
    context: NotificationContext,
    detail: str = "",
) -> str:
    """
    Render the notification text

    Args:
        detail: For REVIEW, what was added ("feedback", "review");
            for VOTE_REJECTED, the rejection comment
    """
    if action == NotificationAction.NEW_VERSION:
        return f"{actor.display_name} has added a version on {context.shot_path}"
    if action == NotificationAction.REVIEW:
        return f"{actor.display_name} has added a {detail or 'review'} on your {context.shot_path}"
    return f"{actor.display_name} has rejected your {context.shot_path}: {detail}"


def shot_link(shot_id: str) -> str:
    return SHOT_LINK_TEMPLATE.format(shot_id=shot_id)


class NotificationRouter:
    """
    Resolves recipients for a shot and writes notifications

    Writes go through their own session so a failed notification never
    disturbs the caller's transaction; failures are logged and dropped.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    @staticmethod
    def context_for_shot(db: Session, shot: ShotModel) -> NotificationContext:
        scene = ProjectDB.get_scene(db, shot.scene_id)
        project = ProjectDB.get_project(db, scene.project_id) if scene else None
        path = "/".join(
            [
                project.name if project else "?",
                scene.name if scene else "?",
                shot.name,
            ]
        )
        return NotificationContext(
            shot_id=shot.id,
            shot_path=path,
            assignee_id=shot.assigned_pe_id,
            tier2_user_id=project.assigned_pm_id if project else None,
            tier1_user_ids=[user.id for user in UserDB.list_by_role(db, Role.CD.value)],
        )

    def notify(
        self,
        db: Session,
        action: NotificationAction,
        actor: ActorContext,
        shot: ShotModel,
        detail: str = "",
    ) -> List[str]:
        """
        Fire notifications for an action on a shot

        Args:
            db: Session used to read the assignment graph
            action: Transition that happened
            actor: Acting user
            shot: Shot the transition concerns
            detail: See :func:`build_message`

        Returns:
            Recipients that were written successfully
        """
        context = self.context_for_shot(db, shot)
        targets = recipients(action, actor, context)
        if not targets:
            return []

        message = build_message(action, actor, context, detail)
        link = shot_link(shot.id)
        delivered = []
        for user_id in targets:
            if self.deliver(user_id, message, link, action):
                delivered.append(user_id)

        logger.info(
            "notifications_sent",
            action=action.value,
            shot_id=shot.id,
            recipients=delivered,
        )
        return delivered

    def deliver(
        self,
        user_id: str,
        message: str,
        link: Optional[str],
        action: NotificationAction,
    ) -> bool:
        """Write one notification; failures are logged, never raised"""
        db = self.session_factory()
        try:
            NotificationDB.create_notification(db, user_id, message, link)
            return True
        except SQLAlchemyError as e:
            db.rollback()
            log_notification_failure(user_id, action.value, e)
            return False
        finally:
            db.close()
