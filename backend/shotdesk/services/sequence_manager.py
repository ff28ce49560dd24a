"""
Sequence Manager - Dense shot ordering within a scene, naming and trash
"""

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shotdesk.config.constants import SHOT_NAME_TEMPLATE
from shotdesk.config.settings import settings
from shotdesk.models import transaction
from shotdesk.models.actor import ActorContext
from shotdesk.models.shot import ShotModel
from shotdesk.models.version import ReviewModel, VersionModel
from shotdesk.services.errors import NotFoundError, SequenceWriteError, ValidationFailedError
from shotdesk.services.observability import log_sequence_change
from shotdesk.services.permissions import Action, require
from shotdesk.services.storage import ProjectDB, ShotDB

# Fields a caller may set when creating a shot
SHOT_FIELDS = ("folder_id", "assigned_pe_id", "storyboard_url", "storyboard_uploader_id", "style_url")


def days_remaining(
    deleted_at: Optional[datetime],
    now: Optional[datetime] = None,
    retention_days: Optional[int] = None,
) -> int:
    """Whole days left before a soft-deleted shot is purged"""
    retention = settings.trash_retention_days if retention_days is None else retention_days
    if deleted_at is None:
        return retention
    elapsed = (now or datetime.utcnow()) - deleted_at
    return max(0, retention - elapsed.days)


class SequenceManager:
    """
    Keeps ``sequence`` a dense 0..N-1 permutation over a scene's visible shots

    Every structural change runs in one transaction and ends with a rename
    pass, so names always read ``Shot_{sequence + 1}``. A failed change is
    rolled back completely and reported as :class:`SequenceWriteError`.
    """

    def __init__(self, db: Session, retention_days: Optional[int] = None):
        self.db = db
        self.retention_days = settings.trash_retention_days if retention_days is None else retention_days

    def append(self, actor: ActorContext, scene_id: str, **fields) -> ShotModel:
        """
        Add a new shot at the end of the scene

        Returns:
            The new shot (``sequence`` equals the previous visible count)
        """
        require(actor, Action.EDIT_SEQUENCE)
        self._get_scene(scene_id)
        fields = self._shot_fields(fields)

        def apply():
            position = ShotDB.count_visible(self.db, scene_id)
            return ShotDB.stage_shot(
                self.db,
                scene_id,
                SHOT_NAME_TEMPLATE.format(number=position + 1),
                position,
                **fields,
            )

        return self._write(scene_id, "append", actor, apply)

    def insert_before(self, actor: ActorContext, scene_id: str, position: int, **fields) -> ShotModel:
        """
        Insert a new shot at ``position``, shifting every shot at or after it by one

        Raises:
            ValidationFailedError: Position outside 0..N
        """
        require(actor, Action.EDIT_SEQUENCE)
        self._get_scene(scene_id)
        count = ShotDB.count_visible(self.db, scene_id)
        if position < 0 or position > count:
            raise ValidationFailedError(f"Position {position} is outside 0..{count}")
        fields = self._shot_fields(fields)

        def apply():
            ShotDB.shift_sequences(self.db, scene_id, position, delta=1)
            return ShotDB.stage_shot(
                self.db,
                scene_id,
                SHOT_NAME_TEMPLATE.format(number=position + 1),
                position,
                **fields,
            )

        return self._write(scene_id, "insert_before", actor, apply)

    def reorder(self, actor: ActorContext, scene_id: str, ordered_ids: List[str]) -> List[ShotModel]:
        """
        Apply a full new order of the scene's visible shots

        Raises:
            ValidationFailedError: ``ordered_ids`` is not a permutation of the visible shots
        """
        require(actor, Action.EDIT_SEQUENCE)
        self._get_scene(scene_id)
        visible = {shot.id: shot for shot in ShotDB.list_visible(self.db, scene_id)}
        if len(ordered_ids) != len(set(ordered_ids)) or set(ordered_ids) != set(visible):
            raise ValidationFailedError(
                "New order must list every visible shot of the scene exactly once",
                suggested_modifications=["Re-fetch the scene and retry the reorder"],
            )

        def apply():
            for index, shot_id in enumerate(ordered_ids):
                visible[shot_id].sequence = index

        self._write(scene_id, "reorder", actor, apply)
        return ShotDB.list_visible(self.db, scene_id)

    def renumber_names(self, scene_id: str) -> List[ShotModel]:
        """Close gaps in the visible shots' sequences and rewrite their names from them"""
        self._write(scene_id, "renumber", None, lambda: self._compact(scene_id))
        return ShotDB.list_visible(self.db, scene_id)

    def soft_delete(self, actor: ActorContext, shot_id: str) -> ShotModel:
        """
        Move a shot to the trash

        It keeps its last sequence value; the remaining shots are compacted.
        """
        require(actor, Action.EDIT_SEQUENCE)
        shot = self._get_shot(shot_id)
        if shot.is_deleted:
            raise ValidationFailedError(f"Shot {shot_id} is already deleted")

        def apply():
            shot.is_deleted = True
            shot.deleted_at = datetime.utcnow()
            self.db.flush()
            self._compact(shot.scene_id)
            return shot

        return self._write(shot.scene_id, "soft_delete", actor, apply)

    def restore(self, actor: ActorContext, shot_id: str, now: Optional[datetime] = None) -> ShotModel:
        """
        Bring a trashed shot back; it re-enters at the end of the scene

        Raises:
            ValidationFailedError: Shot is not deleted, or its retention has run out
        """
        require(actor, Action.EDIT_SEQUENCE)
        shot = self._get_shot(shot_id)
        if not shot.is_deleted:
            raise ValidationFailedError(f"Shot {shot_id} is not deleted")
        if days_remaining(shot.deleted_at, now=now, retention_days=self.retention_days) <= 0:
            raise ValidationFailedError(f"Shot {shot_id} is past its retention period")

        def apply():
            position = ShotDB.count_visible(self.db, shot.scene_id)
            shot.is_deleted = False
            shot.deleted_at = None
            shot.sequence = position
            return shot

        return self._write(shot.scene_id, "restore", actor, apply)

    def days_remaining(self, shot: ShotModel, now: Optional[datetime] = None) -> int:
        return days_remaining(shot.deleted_at, now=now, retention_days=self.retention_days)

    def purge_expired(self, scene_id: str, now: Optional[datetime] = None) -> int:
        """
        Permanently delete trashed shots past retention, with their versions and reviews

        Returns:
            Number of shots purged
        """
        cutoff = (now or datetime.utcnow()) - timedelta(days=self.retention_days)
        expired = ShotDB.list_expired(self.db, scene_id, cutoff)
        if not expired:
            return 0

        shot_ids = [shot.id for shot in expired]
        try:
            with transaction(self.db):
                version_ids = [
                    v.id for v in self.db.query(VersionModel).filter(VersionModel.shot_id.in_(shot_ids)).all()
                ]
                if version_ids:
                    self.db.query(ReviewModel).filter(
                        ReviewModel.version_id.in_(version_ids)
                    ).delete(synchronize_session=False)
                    self.db.query(VersionModel).filter(
                        VersionModel.id.in_(version_ids)
                    ).delete(synchronize_session=False)
                for shot in expired:
                    self.db.delete(shot)
        except SQLAlchemyError as e:
            raise SequenceWriteError(f"Failed to purge trash of scene {scene_id}: {e}") from e

        log_sequence_change(scene_id, "purge", shot_ids)
        return len(shot_ids)

    # Helpers

    def _write(self, scene_id: str, operation: str, actor: Optional[ActorContext], apply):
        try:
            with transaction(self.db):
                result = apply()
                self.db.flush()
                shots = self._renumber(scene_id)
        except SQLAlchemyError as e:
            raise SequenceWriteError(
                f"Failed to {operation} in scene {scene_id}: {e}",
                suggested_modifications=["Re-fetch the scene order"],
            ) from e

        if result is not None:
            self.db.refresh(result)
        log_sequence_change(
            scene_id,
            operation,
            [shot.id for shot in shots],
            actor_id=actor.user_id if actor else None,
        )
        return result

    def _compact(self, scene_id: str) -> None:
        for index, shot in enumerate(ShotDB.list_visible(self.db, scene_id)):
            shot.sequence = index

    def _renumber(self, scene_id: str) -> List[ShotModel]:
        shots = ShotDB.list_visible(self.db, scene_id)
        for shot in shots:
            name = SHOT_NAME_TEMPLATE.format(number=shot.sequence + 1)
            if shot.name != name:
                shot.name = name
        return shots

    @staticmethod
    def _shot_fields(fields: dict) -> dict:
        unknown = set(fields) - set(SHOT_FIELDS)
        if unknown:
            raise ValidationFailedError(f"Unknown shot fields: {', '.join(sorted(unknown))}")
        return {key: value for key, value in fields.items() if value is not None}

    def _get_scene(self, scene_id: str):
        scene = ProjectDB.get_scene(self.db, scene_id)
        if scene is None:
            raise NotFoundError(f"Scene not found: {scene_id}")
        return scene

    def _get_shot(self, shot_id: str) -> ShotModel:
        shot = ShotDB.get_shot(self.db, shot_id)
        if shot is None:
            raise NotFoundError(f"Shot not found: {shot_id}")
        return shot