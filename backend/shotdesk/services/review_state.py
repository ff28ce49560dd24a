"""
Review State Machine - Votes, comments, activation and the escalation tier
"""

from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shotdesk.models import transaction
from shotdesk.models.actor import ActorContext
from shotdesk.models.generation import GenerationJob, GenerationStatus
from shotdesk.models.shot import ShotModel
from shotdesk.models.version import ReviewModel, Tier, VersionModel
from shotdesk.services.errors import (
    NotFoundError,
    ReviewWriteError,
    ShotdeskError,
    ValidationFailedError,
)
from shotdesk.services.notification_router import NotificationAction, NotificationRouter
from shotdesk.services.observability import log_sync_failure, log_vote_cast, logger
from shotdesk.services.permissions import Action, require
from shotdesk.services.storage import ShotDB, VersionDB

VOTING_TIERS = (Tier.TIER1, Tier.TIER2)


class VoteOutcome(BaseModel):
    """Result of a vote; ``warning`` is set when the vote stands but the external sync failed"""

    review: Dict[str, Any]
    version_id: str
    is_active: bool
    activated: bool = False
    synced: bool = False
    warning: Optional[str] = None


class ReviewStateMachine:
    """
    Applies review transitions for one database session

    Every write is all-or-nothing: on a database error the session is rolled
    back and :class:`ReviewWriteError` tells the caller to re-fetch.
    """

    def __init__(self, db: Session, sync_client, notifier: Optional[NotificationRouter] = None):
        """
        Initialize review state machine

        Args:
            db: Database session
            sync_client: External sync client (``set_active_artifact``)
            notifier: Notification router
        """
        self.db = db
        self.sync_client = sync_client
        self.notifier = notifier or NotificationRouter()

    # Versions

    def create_version(
        self,
        actor: ActorContext,
        shot_id: str,
        artifact_link: str,
        public_link: Optional[str] = None,
    ) -> VersionModel:
        """
        Record an uploaded or promoted artifact as the shot's next version

        The version starts inactive with an empty review attached.

        Raises:
            NotFoundError: Unknown or deleted shot
            PermissionDeniedError: Actor may not add versions to this shot
            ReviewWriteError: Database write failed
        """
        shot = self._get_shot(shot_id)
        require(actor, Action.CREATE_VERSION, assignee_id=shot.assigned_pe_id)
        if not artifact_link or not artifact_link.strip():
            raise ValidationFailedError("artifact_link is required")

        try:
            with transaction(self.db):
                version = VersionModel(
                    shot_id=shot.id,
                    uploader_id=actor.user_id,
                    version_number=VersionDB.next_version_number(self.db, shot.id),
                    artifact_link=artifact_link,
                    public_link=public_link,
                    is_active=False,
                )
                self.db.add(version)
                self.db.flush()
                self.db.add(ReviewModel(version_id=version.id))
        except SQLAlchemyError as e:
            raise ReviewWriteError(f"Failed to create version: {e}") from e

        self.db.refresh(version)
        logger.info(
            "version_created",
            shot_id=shot.id,
            version_id=version.id,
            version_number=version.version_number,
            uploader_id=actor.user_id,
        )
        self.notifier.notify(self.db, NotificationAction.NEW_VERSION, actor, shot)
        return version

    def promote_generation(self, actor: ActorContext, shot_id: str, job: GenerationJob) -> VersionModel:
        """Turn a completed generation into a new version of the shot"""
        if job.shot_id != shot_id:
            raise ValidationFailedError(f"Generation {job.id} belongs to another shot")
        if job.status != GenerationStatus.COMPLETED or not job.image_url:
            raise ValidationFailedError(f"Generation {job.id} has no finished image to promote")
        return self.create_version(actor, shot_id, artifact_link=job.image_url, public_link=job.image_url)

    # Tier votes and comments

    async def cast_vote(
        self,
        actor: ActorContext,
        review_id: str,
        tier: Tier,
        vote: bool,
    ) -> VoteOutcome:
        """
        Cast or overwrite a tier-1 / tier-2 vote

        A positive vote makes the version the shot's only active version and
        publishes it externally, every time. A negative vote never deactivates.

        Raises:
            ValidationFailedError: Not a voting tier
            PermissionDeniedError: Actor's role does not own the tier
            NotFoundError: Unknown review
            ReviewWriteError: Database write failed (nothing applied)
        """
        tier = self._voting_tier(tier)
        require(actor, Action.VOTE, tier=tier)
        review, version, shot = self._load_review(review_id)

        try:
            with transaction(self.db):
                setattr(review, f"{tier.value}_vote", vote)
                setattr(review, f"{tier.value}_voted_at", datetime.utcnow())
                activated = VersionDB.set_active(self.db, version) if vote else False
        except SQLAlchemyError as e:
            raise ReviewWriteError(f"Failed to record vote: {e}") from e

        self.db.refresh(review)
        self.db.refresh(version)
        log_vote_cast(review.id, version.id, tier.value, vote, actor.user_id, activated)

        synced, warning = False, None
        if vote:
            synced, warning = await self._sync(version, shot)

        self.notifier.notify(self.db, NotificationAction.REVIEW, actor, shot, detail="feedback")
        return VoteOutcome(
            review=review.to_dict(),
            version_id=version.id,
            is_active=version.is_active,
            activated=activated,
            synced=synced,
            warning=warning,
        )

    def save_comment(
        self,
        actor: ActorContext,
        review_id: str,
        tier: Tier,
        comment: str,
        attachment_url: Optional[str] = None,
    ) -> ReviewModel:
        """
        Save free-text feedback (and an optional image) for a tier without touching its vote

        Raises:
            ValidationFailedError: Not a voting tier
            PermissionDeniedError: Actor's role does not own the tier
            NotFoundError: Unknown review
            ReviewWriteError: Database write failed (nothing applied)
        """
        tier = self._voting_tier(tier)
        require(actor, Action.COMMENT, tier=tier)
        review, _, shot = self._load_review(review_id)

        try:
            with transaction(self.db):
                setattr(review, f"{tier.value}_comment", comment)
                if attachment_url:
                    setattr(review, f"{tier.value}_image_url", attachment_url)
        except SQLAlchemyError as e:
            raise ReviewWriteError(f"Failed to save comment: {e}") from e

        self.db.refresh(review)
        self.notifier.notify(self.db, NotificationAction.REVIEW, actor, shot, detail="review")
        return review

    # Escalation tier

    async def master_approve(self, actor: ActorContext, version_id: str) -> VoteOutcome:
        """
        Approve an already-approved version at the escalation tier and publish it

        Raises:
            ValidationFailedError: Version has no positive tier vote or is no longer active
            PermissionDeniedError: Actor may not vote on the escalation tier
            NotFoundError: Unknown version
            ReviewWriteError: Database write failed (nothing applied)
        """
        require(actor, Action.VOTE, tier=Tier.MASTER)
        review, version, shot = self._load_for_master(version_id)

        try:
            with transaction(self.db):
                review.master_vote = True
                review.master_voted_at = datetime.utcnow()
        except SQLAlchemyError as e:
            raise ReviewWriteError(f"Failed to record escalation approval: {e}") from e

        self.db.refresh(review)
        log_vote_cast(review.id, version.id, Tier.MASTER.value, True, actor.user_id, False)
        synced, warning = await self._sync(version, shot)
        return VoteOutcome(
            review=review.to_dict(),
            version_id=version.id,
            is_active=version.is_active,
            synced=synced,
            warning=warning,
        )

    def master_reject(
        self,
        actor: ActorContext,
        version_id: str,
        comment: str,
        attachment_url: Optional[str] = None,
    ) -> ReviewModel:
        """
        Reject a version at the escalation tier; the comment is mandatory

        The assignee is always notified. The version stays active.

        Raises:
            ValidationFailedError: Blank comment, or version is not the approved active one
            PermissionDeniedError: Actor may not vote on the escalation tier
            NotFoundError: Unknown version
            ReviewWriteError: Database write failed (nothing applied)
        """
        require(actor, Action.VOTE, tier=Tier.MASTER)
        if not comment or not comment.strip():
            raise ValidationFailedError(
                "A comment is required to reject a version",
                suggested_modifications=["Describe what needs to change"],
            )
        review, version, shot = self._load_for_master(version_id)

        try:
            with transaction(self.db):
                review.master_vote = False
                review.master_comment = comment.strip()
                review.master_voted_at = datetime.utcnow()
                if attachment_url:
                    review.master_image_url = attachment_url
        except SQLAlchemyError as e:
            raise ReviewWriteError(f"Failed to record escalation rejection: {e}") from e

        self.db.refresh(review)
        log_vote_cast(review.id, version.id, Tier.MASTER.value, False, actor.user_id, False)
        self.notifier.notify(
            self.db,
            NotificationAction.VOTE_REJECTED,
            actor,
            shot,
            detail=review.master_comment,
        )
        return review

    # Helpers

    async def _sync(self, version: VersionModel, shot: ShotModel) -> Tuple[bool, Optional[str]]:
        try:
            await self.sync_client.set_active_artifact(version.id, shot.folder_id, shot.name)
        except ShotdeskError as e:
            log_sync_failure(version.id, shot.folder_id, e.message)
            return False, f"Vote recorded, but publishing the active version failed: {e.message}"
        return True, None

    @staticmethod
    def _voting_tier(tier) -> Tier:
        try:
            tier = Tier(tier)
        except ValueError as e:
            raise ValidationFailedError(f"Unknown tier: {tier}") from e
        if tier not in VOTING_TIERS:
            raise ValidationFailedError("Escalation votes go through master approve/reject")
        return tier

    def _get_shot(self, shot_id: str) -> ShotModel:
        shot = ShotDB.get_shot(self.db, shot_id)
        if shot is None or shot.is_deleted:
            raise NotFoundError(f"Shot not found: {shot_id}")
        return shot

    def _load_review(self, review_id: str) -> Tuple[ReviewModel, VersionModel, ShotModel]:
        review = VersionDB.get_review(self.db, review_id)
        if review is None:
            raise NotFoundError(f"Review not found: {review_id}")
        version = VersionDB.get_version(self.db, review.version_id)
        return review, version, ShotDB.get_shot(self.db, version.shot_id)

    def _load_for_master(self, version_id: str) -> Tuple[ReviewModel, VersionModel, ShotModel]:
        version = VersionDB.get_version(self.db, version_id)
        if version is None:
            raise NotFoundError(f"Version not found: {version_id}")
        review = VersionDB.get_review_for_version(self.db, version.id)
        if review is None or not review.is_approved:
            raise ValidationFailedError(
                f"Version {version_id} has not been approved at tier 1 or tier 2"
            )
        if not version.is_active:
            raise ValidationFailedError(
                f"Version {version_id} was superseded; only the active version can be escalated"
            )
        return review, version, ShotDB.get_shot(self.db, version.shot_id)
