"""
Workstation Sessions - Generation tracking bound to one user viewing one shot
"""

import time
import uuid
from typing import Dict, List, Optional

from shotdesk.config.settings import settings
from shotdesk.models.actor import ActorContext
from shotdesk.models.generation import BackgroundGridGeneration, GenerationJob
from shotdesk.services.errors import (
    CollaboratorError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from shotdesk.services.job_tracker import JobTracker
from shotdesk.services.observability import logger
from shotdesk.services.polling import PollHandle, PollingScheduler


class WorkstationSession:
    """
    Owns the JobTracker and PollingScheduler of one (actor, shot) context

    Usable as an async context manager; leaving the block tears the context
    down exactly like an explicit :meth:`close`.
    """

    def __init__(
        self,
        actor: ActorContext,
        shot_id: str,
        client,
        interval_s: Optional[float] = None,
        unconfirmed_ttl_s: Optional[float] = None,
    ):
        self.id = uuid.uuid4().hex
        self.actor = actor
        self.shot_id = shot_id
        self.client = client
        self.tracker = JobTracker(shot_id, client, unconfirmed_ttl_s=unconfirmed_ttl_s)
        self.scheduler = PollingScheduler(
            self.tracker.refresh,
            self.tracker.has_pending,
            interval_s=interval_s,
        )
        self._poll_handle: Optional[PollHandle] = None
        self._closed = False
        self.last_used = time.monotonic()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def polling(self) -> bool:
        return self.scheduler.running

    async def open(self) -> List[GenerationJob]:
        """Load the initial generation list and start polling if anything is pending"""
        jobs = await self.tracker.refresh()
        self.ensure_polling()
        return jobs

    def ensure_polling(self) -> None:
        if self._closed or not self.tracker.has_pending():
            return
        self._poll_handle = self.scheduler.start(self.shot_id)

    def generate(self, request) -> GenerationJob:
        """
        Submit a tracked generation and make sure the poller is running

        Returns:
            The optimistic pending job
        """
        self._check_open()
        job = self.tracker.submit(request)
        self.ensure_polling()
        return job

    async def generate_and_confirm(self, request) -> GenerationJob:
        """
        Submit a generation and wait until the service has accepted it

        Raises:
            DispatchError: The request never became a job (the optimistic entry is gone)
        """
        local_job = self.generate(request)
        job_id = await self.tracker.confirm(local_job.id)
        return self.tracker.get(job_id) or local_job

    async def retry(self, job_id: str) -> GenerationJob:
        """Restore a job's settings and submit them as a new job"""
        self._check_open()
        local_job = self.tracker.retry_from(job_id, user_email=self.actor.email)
        self.ensure_polling()
        job_id = await self.tracker.confirm(local_job.id)
        return self.tracker.get(job_id) or local_job

    async def background_grid(self, request: BackgroundGridGeneration) -> List[str]:
        """
        Run a background-grid expansion; answered synchronously, never tracked

        Returns:
            URLs of the generated variations
        """
        self._check_open()
        if not isinstance(request, BackgroundGridGeneration):
            raise ValidationFailedError("Expected a background_grid request")
        result = await self.client.dispatch_generation(request)
        if not result.success or not result.urls:
            raise CollaboratorError(result.detail or "Background grid generation returned no images")
        return list(result.urls)

    def _check_open(self) -> None:
        if self._closed:
            raise ValidationFailedError(f"Workstation session {self.id} is closed")

    def close(self) -> None:
        """Stop polling and drop any response that arrives afterwards"""
        if self._closed:
            return
        self._closed = True
        if self._poll_handle is not None:
            self._poll_handle.cancel()
        self.scheduler.stop()
        self.tracker.close()
        logger.info("workstation_closed", session_id=self.id, shot_id=self.shot_id)

    async def __aenter__(self) -> "WorkstationSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class WorkstationRegistry:
    """
    Open workstation sessions by id

    Clients that leave without closing their session are cleaned up lazily:
    sessions idle for longer than ``idle_ttl_s`` with no poll running are
    closed whenever a session is opened or looked up.
    """

    def __init__(
        self,
        client,
        interval_s: Optional[float] = None,
        unconfirmed_ttl_s: Optional[float] = None,
        idle_ttl_s: Optional[float] = None,
    ):
        self.client = client
        self.interval_s = interval_s
        self.unconfirmed_ttl_s = unconfirmed_ttl_s
        self.idle_ttl_s = idle_ttl_s or settings.workstation_idle_ttl_s
        self._sessions: Dict[str, WorkstationSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def open(self, actor: ActorContext, shot_id: str) -> WorkstationSession:
        self.evict_idle()
        session = WorkstationSession(
            actor,
            shot_id,
            self.client,
            interval_s=self.interval_s,
            unconfirmed_ttl_s=self.unconfirmed_ttl_s,
        )
        try:
            await session.open()
        except Exception:
            session.close()
            raise
        self._sessions[session.id] = session
        logger.info("workstation_opened", session_id=session.id, shot_id=shot_id, user_id=actor.user_id)
        return session

    def get(self, session_id: str, actor: ActorContext) -> WorkstationSession:
        """
        Look up a session owned by ``actor``

        Raises:
            NotFoundError: No open session with that id
            PermissionDeniedError: Session belongs to another user
        """
        self.evict_idle()
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Workstation session not found: {session_id}")
        if session.actor.user_id != actor.user_id:
            raise PermissionDeniedError("Workstation session belongs to another user")
        session.touch()
        return session

    def close(self, session_id: str, actor: ActorContext) -> None:
        session = self.get(session_id, actor)
        session.close()
        del self._sessions[session_id]

    def evict_idle(self, now: Optional[float] = None) -> List[str]:
        """
        Close sessions that are idle past the TTL and not polling

        Returns:
            Ids of the evicted sessions
        """
        now = now or time.monotonic()
        evicted = [
            session_id
            for session_id, session in self._sessions.items()
            if not session.polling and session.idle_for(now) > self.idle_ttl_s
        ]
        for session_id in evicted:
            session = self._sessions.pop(session_id)
            session.close()
            logger.info("workstation_evicted", session_id=session_id, shot_id=session.shot_id)
        return evicted

    def close_all(self) -> None:
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()
