"""
API Dependencies - Acting user and shared service instances
"""

from functools import lru_cache

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from shotdesk.models import get_db
from shotdesk.models.actor import ActorContext, Role
from shotdesk.services.artifact_sync import ArtifactSyncClient
from shotdesk.services.generation_client import GenerationClient
from shotdesk.services.notification_router import NotificationRouter
from shotdesk.services.rate_limiter import RateLimiter
from shotdesk.services.review_state import ReviewStateMachine
from shotdesk.services.storage import UserDB
from shotdesk.services.workstation import WorkstationRegistry


@lru_cache
def get_generation_client() -> GenerationClient:
    return GenerationClient()


@lru_cache
def get_sync_client() -> ArtifactSyncClient:
    return ArtifactSyncClient()


@lru_cache
def get_registry() -> WorkstationRegistry:
    return WorkstationRegistry(get_generation_client())


@lru_cache
def get_rate_limiter() -> RateLimiter:
    return RateLimiter()


@lru_cache
def get_notifier() -> NotificationRouter:
    return NotificationRouter()


def get_actor(
    x_user_id: str = Header(..., description="Authenticated user id, set by the auth proxy"),
    db: Session = Depends(get_db),
) -> ActorContext:
    """
    Resolve the acting user from the X-User-Id header

    Authentication happens upstream; this only maps the id to a role.
    """
    user = UserDB.get_user(db, x_user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user",
        )
    return ActorContext(user_id=user.id, role=Role(user.role), email=user.email)


def get_review_machine(
    db: Session = Depends(get_db),
    sync_client=Depends(get_sync_client),
    notifier: NotificationRouter = Depends(get_notifier),
) -> ReviewStateMachine:
    return ReviewStateMachine(db, sync_client, notifier=notifier)
