"""
Storage Service - Database operations for users, projects, shots, versions, reviews and notifications

Single-row helpers commit on their own. Helpers documented as "no commit"
only stage changes so callers can group them inside ``transaction(db)``.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from shotdesk.config.constants import NOTIFICATION_INBOX_LIMIT
from shotdesk.models.notification import NotificationModel
from shotdesk.models.project import ProjectModel, SceneModel, UserModel
from shotdesk.models.shot import ShotModel
from shotdesk.models.version import ReviewModel, VersionModel


class UserDB:
    """User database operations"""

    @staticmethod
    def create_user(db: Session, email: str, role: str) -> UserModel:
        """Create a new user"""
        user = UserModel(email=email, role=role)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def get_user(db: Session, user_id: str) -> Optional[UserModel]:
        """Get user by ID"""
        return db.query(UserModel).filter(UserModel.id == user_id).first()

    @staticmethod
    def list_by_role(db: Session, role: str) -> List[UserModel]:
        """List users holding a role"""
        return db.query(UserModel).filter(UserModel.role == role).order_by(UserModel.email).all()


class ProjectDB:
    """Project and scene database operations"""

    @staticmethod
    def create_project(
        db: Session,
        name: str,
        folder_id: Optional[str] = None,
        assigned_pm_id: Optional[str] = None,
    ) -> ProjectModel:
        """Create a new project"""
        project = ProjectModel(name=name, folder_id=folder_id, assigned_pm_id=assigned_pm_id)
        db.add(project)
        db.commit()
        db.refresh(project)
        return project

    @staticmethod
    def get_project(db: Session, project_id: str) -> Optional[ProjectModel]:
        """Get project by ID"""
        return db.query(ProjectModel).filter(ProjectModel.id == project_id).first()

    @staticmethod
    def create_scene(
        db: Session,
        project_id: str,
        name: str,
        folder_id: Optional[str] = None,
    ) -> SceneModel:
        """Create a new scene"""
        scene = SceneModel(project_id=project_id, name=name, folder_id=folder_id)
        db.add(scene)
        db.commit()
        db.refresh(scene)
        return scene

    @staticmethod
    def get_scene(db: Session, scene_id: str) -> Optional[SceneModel]:
        """Get scene by ID"""
        return db.query(SceneModel).filter(SceneModel.id == scene_id).first()

    @staticmethod
    def list_scenes(db: Session, project_id: str) -> List[SceneModel]:
        """List scenes of a project"""
        return (
            db.query(SceneModel)
            .filter(SceneModel.project_id == project_id)
            .order_by(SceneModel.created_at)
            .all()
        )

    @staticmethod
    def list_projects(db: Session, pm_id: Optional[str] = None) -> List[ProjectModel]:
        """List projects, optionally only those managed by ``pm_id``"""
        query = db.query(ProjectModel)
        if pm_id is not None:
            query = query.filter(ProjectModel.assigned_pm_id == pm_id)
        return query.order_by(ProjectModel.created_at).all()

    @staticmethod
    def set_assigned_pm(db: Session, project_id: str, pm_id: Optional[str]) -> Optional[ProjectModel]:
        """Set or clear the project's tier-2 reviewer"""
        project = ProjectDB.get_project(db, project_id)
        if project is None:
            return None
        project.assigned_pm_id = pm_id
        db.commit()
        db.refresh(project)
        return project

    @staticmethod
    def project_for_shot(db: Session, shot: ShotModel) -> Optional[ProjectModel]:
        """Resolve the project owning a shot"""
        return (
            db.query(ProjectModel)
            .join(SceneModel, SceneModel.project_id == ProjectModel.id)
            .filter(SceneModel.id == shot.scene_id)
            .first()
        )


class ShotDB:
    """Shot database operations"""

    @staticmethod
    def get_shot(db: Session, shot_id: str) -> Optional[ShotModel]:
        """Get shot by ID (deleted shots included)"""
        return db.query(ShotModel).filter(ShotModel.id == shot_id).first()

    @staticmethod
    def list_visible(db: Session, scene_id: str) -> List[ShotModel]:
        """List non-deleted shots of a scene in sequence order"""
        return (
            db.query(ShotModel)
            .filter(ShotModel.scene_id == scene_id, ShotModel.is_deleted.is_(False))
            .order_by(ShotModel.sequence, ShotModel.created_at)
            .all()
        )

    @staticmethod
    def list_deleted(db: Session, scene_id: str) -> List[ShotModel]:
        """List soft-deleted shots of a scene, most recently deleted first"""
        return (
            db.query(ShotModel)
            .filter(ShotModel.scene_id == scene_id, ShotModel.is_deleted.is_(True))
            .order_by(ShotModel.deleted_at.desc())
            .all()
        )

    @staticmethod
    def count_visible(db: Session, scene_id: str) -> int:
        """Count non-deleted shots of a scene"""
        return (
            db.query(func.count(ShotModel.id))
            .filter(ShotModel.scene_id == scene_id, ShotModel.is_deleted.is_(False))
            .scalar()
        )

    @staticmethod
    def list_for_project(db: Session, project_id: str) -> List[ShotModel]:
        """List non-deleted shots across every scene of a project"""
        return (
            db.query(ShotModel)
            .join(SceneModel, SceneModel.id == ShotModel.scene_id)
            .filter(SceneModel.project_id == project_id, ShotModel.is_deleted.is_(False))
            .all()
        )

    @staticmethod
    def stage_shot(db: Session, scene_id: str, name: str, sequence: int, **kwargs) -> ShotModel:
        """Add a new shot to the session (no commit)"""
        shot = ShotModel(scene_id=scene_id, name=name, sequence=sequence, **kwargs)
        db.add(shot)
        return shot

    @staticmethod
    def shift_sequences(db: Session, scene_id: str, from_position: int, delta: int = 1) -> int:
        """
        Shift every visible shot with ``sequence >= from_position`` by ``delta`` (no commit)

        Returns:
            Number of shots shifted
        """
        return (
            db.query(ShotModel)
            .filter(
                ShotModel.scene_id == scene_id,
                ShotModel.is_deleted.is_(False),
                ShotModel.sequence >= from_position,
            )
            .update({ShotModel.sequence: ShotModel.sequence + delta}, synchronize_session="fetch")
        )

    @staticmethod
    def add_background_reference(db: Session, shot_id: str, url: str) -> Optional[ShotModel]:
        """Append a background reference URL, skipping duplicates"""
        shot = ShotDB.get_shot(db, shot_id)
        if shot is None:
            return None
        urls = list(shot.background_urls or [])
        if url not in urls:
            urls.append(url)
            # Reassign so the JSON column is flagged dirty
            shot.background_urls = urls
            db.commit()
            db.refresh(shot)
        return shot

    @staticmethod
    def list_expired(db: Session, scene_id: str, cutoff: datetime) -> List[ShotModel]:
        """List soft-deleted shots deleted before ``cutoff``"""
        return (
            db.query(ShotModel)
            .filter(
                ShotModel.scene_id == scene_id,
                ShotModel.is_deleted.is_(True),
                ShotModel.deleted_at < cutoff,
            )
            .all()
        )


    @staticmethod
    def assign_pe(db: Session, shot_ids: List[str], pe_id: Optional[str]) -> int:
        """Set or clear the assignee of several shots (no commit)"""
        if not shot_ids:
            return 0
        return (
            db.query(ShotModel)
            .filter(ShotModel.id.in_(shot_ids))
            .update({ShotModel.assigned_pe_id: pe_id}, synchronize_session=False)
        )

    @staticmethod
    def list_assigned(db: Session, pe_id: str) -> List[ShotModel]:
        """List non-deleted shots assigned to a user, across projects"""
        return (
            db.query(ShotModel)
            .filter(ShotModel.assigned_pe_id == pe_id, ShotModel.is_deleted.is_(False))
            .all()
        )


class VersionDB:
    """Version and review database operations"""

    @staticmethod
    def get_version(db: Session, version_id: str) -> Optional[VersionModel]:
        """Get version by ID"""
        return db.query(VersionModel).filter(VersionModel.id == version_id).first()

    @staticmethod
    def next_version_number(db: Session, shot_id: str) -> int:
        """Next version number for a shot (max existing + 1, starting at 1)"""
        current = (
            db.query(func.max(VersionModel.version_number))
            .filter(VersionModel.shot_id == shot_id)
            .scalar()
        )
        return (current or 0) + 1

    @staticmethod
    def list_for_shot(db: Session, shot_id: str) -> List[VersionModel]:
        """List versions of a shot, newest first"""
        return (
            db.query(VersionModel)
            .filter(VersionModel.shot_id == shot_id)
            .order_by(VersionModel.version_number.desc())
            .all()
        )

    @staticmethod
    def get_active(db: Session, shot_id: str) -> Optional[VersionModel]:
        """Get the active version of a shot"""
        return (
            db.query(VersionModel)
            .filter(VersionModel.shot_id == shot_id, VersionModel.is_active.is_(True))
            .first()
        )

    @staticmethod
    def set_active(db: Session, version: VersionModel) -> bool:
        """
        Make ``version`` the only active version of its shot (no commit)

        Returns:
            True if the active pointer moved, False if it was already active
        """
        if version.is_active:
            return False
        (
            db.query(VersionModel)
            .filter(
                VersionModel.shot_id == version.shot_id,
                VersionModel.id != version.id,
                VersionModel.is_active.is_(True),
            )
            .update({VersionModel.is_active: False}, synchronize_session="fetch")
        )
        version.is_active = True
        return True

    @staticmethod
    def get_review(db: Session, review_id: str) -> Optional[ReviewModel]:
        """Get review by ID"""
        return db.query(ReviewModel).filter(ReviewModel.id == review_id).first()

    @staticmethod
    def get_review_for_version(db: Session, version_id: str) -> Optional[ReviewModel]:
        """Get the review attached to a version"""
        return db.query(ReviewModel).filter(ReviewModel.version_id == version_id).first()


class NotificationDB:
    """Notification database operations"""

    @staticmethod
    def create_notification(
        db: Session,
        user_id: str,
        message: str,
        link: Optional[str] = None,
    ) -> NotificationModel:
        """Create a new notification"""
        notification = NotificationModel(user_id=user_id, message=message, link=link)
        db.add(notification)
        db.commit()
        db.refresh(notification)
        return notification

    @staticmethod
    def list_for_user(
        db: Session,
        user_id: str,
        limit: int = NOTIFICATION_INBOX_LIMIT,
    ) -> List[NotificationModel]:
        """List a user's latest notifications"""
        return (
            db.query(NotificationModel)
            .filter(NotificationModel.user_id == user_id)
            .order_by(NotificationModel.created_at.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def mark_all_read(db: Session, user_id: str) -> int:
        """Mark every unread notification of a user as read"""
        updated = (
            db.query(NotificationModel)
            .filter(NotificationModel.user_id == user_id, NotificationModel.is_read.is_(False))
            .update({NotificationModel.is_read: True}, synchronize_session="fetch")
        )
        db.commit()
        return updated
