"""
Observability and Logging Service
"""

import logging

import structlog
from typing import Any, List, Optional

from shotdesk.config.settings import settings


# structlog filters on the stdlib level
logging.basicConfig(format="%(message)s", level=settings.log_level)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

# Get logger
logger = structlog.get_logger(__name__)


def log_reconcile(
    shot_id: str,
    snapshot_size: int,
    preserved_pending: int,
    merged_size: int,
    has_pending: bool,
) -> None:
    """
    Log a reconciliation pass of the generation list

    Args:
        shot_id: Shot whose generations were reconciled
        snapshot_size: Number of jobs reported by the generation service
        preserved_pending: Local pending jobs kept because the server has not seen them yet
        merged_size: Size of the merged list
        has_pending: Whether any job is still pending afterwards
    """
    logger.info(
        "generations_reconciled",
        shot_id=shot_id,
        snapshot_size=snapshot_size,
        preserved_pending=preserved_pending,
        merged_size=merged_size,
        has_pending=has_pending,
    )


def log_dispatch_failure(
    shot_id: str,
    temp_id: str,
    error: str,
    mode: Optional[str] = None,
) -> None:
    """
    Log a generation dispatch that never reached the generation service

    Args:
        shot_id: Shot the job was submitted for
        temp_id: Temporary id of the discarded optimistic entry
        error: Error description
        mode: Generation mode
    """
    logger.error(
        "generation_dispatch_failed",
        shot_id=shot_id,
        temp_id=temp_id,
        error=error,
        mode=mode,
    )


def log_vote_cast(
    review_id: str,
    version_id: str,
    tier: str,
    vote: bool,
    actor_id: str,
    activated: bool,
) -> None:
    """
    Log a tier vote

    Args:
        review_id: Review identifier
        version_id: Version the review belongs to
        tier: "tier1", "tier2" or "master"
        vote: Vote value
        actor_id: User who voted
        activated: Whether the vote moved the active pointer
    """
    logger.info(
        "review_vote_cast",
        review_id=review_id,
        version_id=version_id,
        tier=tier,
        vote=vote,
        actor_id=actor_id,
        activated=activated,
    )


def log_sync_failure(
    version_id: str,
    destination: Optional[str],
    error: str,
) -> None:
    """
    Log an external sync failure after the vote was already recorded

    Args:
        version_id: Version that should have been published
        destination: External destination (drive folder id)
        error: Error description
    """
    logger.warning(
        "artifact_sync_failed",
        version_id=version_id,
        destination=destination,
        error=error,
    )


def log_sequence_change(
    scene_id: str,
    operation: str,
    shot_ids: List[str],
    actor_id: Optional[str] = None,
) -> None:
    """
    Log a structural change to a scene's shot order

    Args:
        scene_id: Scene identifier
        operation: append, insert_before, reorder, soft_delete, restore, purge
        shot_ids: Visible shot ids in their final order
        actor_id: User who made the change
    """
    logger.info(
        "sequence_changed",
        scene_id=scene_id,
        operation=operation,
        shot_count=len(shot_ids),
        shot_ids=shot_ids,
        actor_id=actor_id,
    )


def log_assignment_change(
    target: str,
    target_ids: List[str],
    assignee_id: Optional[str],
    actor_id: str,
) -> None:
    """Log a PM-to-project or PE-to-shots assignment (assignee None when cleared)"""
    logger.info(
        "assignment_changed",
        target=target,
        target_count=len(target_ids),
        target_ids=target_ids,
        assignee_id=assignee_id,
        actor_id=actor_id,
    )

def log_notification_failure(
    user_id: str,
    action: str,
    error: Any,
) -> None:
    """
    Log a notification that could not be written to the notification store

    Args:
        user_id: Intended recipient
        action: new_version, review or vote_rejected
        error: Error description
    """
    logger.warning(
        "notification_failed",
        user_id=user_id,
        action=action,
        error=str(error),
    )
