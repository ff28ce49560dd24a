"""
Assignments - Who reviews a project and who works on each shot
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shotdesk.models import transaction
from shotdesk.models.actor import ActorContext, Role
from shotdesk.models.project import ProjectModel
from shotdesk.services.errors import AssignmentWriteError, NotFoundError, ValidationFailedError
from shotdesk.services.notification_router import shot_link
from shotdesk.services.observability import log_assignment_change
from shotdesk.services.permissions import Action, require
from shotdesk.services.review_status import (
    AssignmentStatus,
    active_review,
    assignment_status,
    natural_key,
)
from shotdesk.services.storage import ProjectDB, ShotDB, UserDB


class AssignmentService:
    """
    Edits the project/PM and shot/PE assignment graph

    The notification router and the progress view read this graph, so every
    change is validated against user roles and project membership first.
    """

    def __init__(self, db: Session):
        self.db = db

    def list_projects(self, actor: ActorContext) -> List[ProjectModel]:
        """Projects the actor can staff: all of them for a CD, the managed ones for a PM"""
        if actor.role == Role.CD:
            return ProjectDB.list_projects(self.db)
        if actor.role == Role.PM:
            return ProjectDB.list_projects(self.db, pm_id=actor.user_id)
        return []

    def assign_pm(self, actor: ActorContext, project_id: str, pm_id: Optional[str]) -> ProjectModel:
        """
        Make ``pm_id`` the project's tier-2 reviewer (None clears it)

        Raises:
            PermissionDeniedError: Actor is not a CD
            NotFoundError: Unknown project or user
            ValidationFailedError: User is not a PM
        """
        require(actor, Action.ASSIGN_PM)
        if ProjectDB.get_project(self.db, project_id) is None:
            raise NotFoundError(f"Project not found: {project_id}")
        if pm_id is not None:
            self._require_role(pm_id, Role.PM)

        project = ProjectDB.set_assigned_pm(self.db, project_id, pm_id)
        log_assignment_change("project", [project_id], pm_id, actor.user_id)
        return project

    def assign_pe(
        self,
        actor: ActorContext,
        project_id: str,
        shot_ids: List[str],
        pe_id: Optional[str],
    ) -> int:
        """
        Assign several shots of one project to a PE at once (None unassigns them)

        Returns:
            Number of shots updated

        Raises:
            PermissionDeniedError: Actor is neither a CD nor the project's PM
            NotFoundError: Unknown project or user
            ValidationFailedError: No shots, shots outside the project, or user is not a PE
        """
        project = ProjectDB.get_project(self.db, project_id)
        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")
        require(actor, Action.ASSIGN_PE, project_pm_id=project.assigned_pm_id)

        unique_ids = list(dict.fromkeys(shot_ids))
        if not unique_ids:
            raise ValidationFailedError("Select at least one shot to assign")
        known = {shot.id for shot in ShotDB.list_for_project(self.db, project_id)}
        foreign = [shot_id for shot_id in unique_ids if shot_id not in known]
        if foreign:
            raise ValidationFailedError(
                f"Shots not in project {project.name}: {', '.join(foreign)}",
                suggested_modifications=["Re-fetch the project's shots and retry"],
            )
        if pe_id is not None:
            self._require_role(pe_id, Role.PE)

        try:
            with transaction(self.db):
                updated = ShotDB.assign_pe(self.db, unique_ids, pe_id)
        except SQLAlchemyError as e:
            raise AssignmentWriteError(f"Failed to assign shots: {e}") from e

        self.db.expire_all()
        log_assignment_change("shots", unique_ids, pe_id, actor.user_id)
        return updated

    def my_assignments(
        self,
        actor: ActorContext,
        status: Optional[AssignmentStatus] = None,
    ) -> List[Dict[str, Any]]:
        """
        The actor's own shots across every project, with their review status

        Args:
            actor: User whose assigned shots are listed
            status: Only keep shots in this status

        Returns:
            Rows sorted naturally by project, scene and shot name
        """
        rows = []
        scenes = {}
        projects = {}
        for shot in ShotDB.list_assigned(self.db, actor.user_id):
            if shot.scene_id not in scenes:
                scenes[shot.scene_id] = ProjectDB.get_scene(self.db, shot.scene_id)
            scene = scenes[shot.scene_id]
            if scene.project_id not in projects:
                projects[scene.project_id] = ProjectDB.get_project(self.db, scene.project_id)
            project = projects[scene.project_id]

            _, review = active_review(self.db, shot.id)
            shot_status = assignment_status(review)
            if status is not None and shot_status != status:
                continue
            rows.append(
                {
                    "id": shot.id,
                    "shot_name": shot.name,
                    "scene_name": scene.name,
                    "project_id": project.id,
                    "project_name": project.name,
                    "status": shot_status.value,
                    "link": shot_link(shot.id),
                }
            )

        rows.sort(
            key=lambda row: (
                natural_key(row["project_name"]),
                natural_key(row["scene_name"]),
                natural_key(row["shot_name"]),
            )
        )
        return rows

    def _require_role(self, user_id: str, role: Role) -> None:
        user = UserDB.get_user(self.db, user_id)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        if user.role != role.value:
            raise ValidationFailedError(f"User {user.email} is a {user.role}, not a {role.value}")
