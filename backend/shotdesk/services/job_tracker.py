"""
Job Tracker - Optimistic generation list for one shot, reconciled against server snapshots
"""

import asyncio
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from shotdesk.config.settings import settings
from shotdesk.models.generation import (
    BackgroundGridGeneration,
    GenerationJob,
    request_from_job,
    utcnow,
)
from shotdesk.services.errors import (
    DispatchError,
    NotFoundError,
    ShotdeskError,
    TransientNetworkError,
    ValidationFailedError,
)
from shotdesk.services.observability import log_dispatch_failure, log_reconcile, logger


def merge_jobs(
    local_pending: Iterable[GenerationJob],
    snapshot: Iterable[GenerationJob],
) -> List[GenerationJob]:
    """
    Merge preserved local entries with an authoritative snapshot

    Entries are de-duplicated by id (the snapshot's record wins) and sorted by
    ``created_at`` descending. Local entries are placed first so that, on equal
    timestamps, a just-submitted job stays ahead of confirmed ones.

    Args:
        local_pending: Local pending jobs the server has not reported yet
        snapshot: Jobs reported by the generation service

    Returns:
        Merged list
    """
    by_id: Dict[str, GenerationJob] = {}
    for job in local_pending:
        by_id[job.id] = job
    for job in snapshot:
        by_id[job.id] = job
    return sorted(by_id.values(), key=lambda job: job.created_at, reverse=True)


class JobTracker:
    """
    Tracks generation jobs for one shot from submission to a terminal state

    Jobs are inserted optimistically with a temporary id, dispatched in the
    background, re-keyed to the durable id once the service answers, and
    reconciled against ``list_generations`` snapshots on every poll.
    """

    def __init__(
        self,
        shot_id: str,
        client,
        unconfirmed_ttl_s: Optional[float] = None,
    ):
        """
        Initialize job tracker

        Args:
            shot_id: Shot whose generations are tracked
            client: Generation client (``dispatch_generation`` / ``list_generations``)
            unconfirmed_ttl_s: Age after which a preserved local pending entry is dropped
        """
        self.shot_id = shot_id
        self.client = client
        self.unconfirmed_ttl_s = unconfirmed_ttl_s or settings.unconfirmed_job_ttl_s

        self._jobs: List[GenerationJob] = []
        self._tasks: Dict[str, asyncio.Task] = {}
        self._dispatch_errors: List[DispatchError] = []
        # temp id -> fetches started before the service accepted it without an id
        self._accepted: Dict[str, int] = {}
        self._fetches = 0
        self._alive = True

    @property
    def jobs(self) -> List[GenerationJob]:
        """Current merged view (a copy)"""
        return list(self._jobs)

    @property
    def alive(self) -> bool:
        return self._alive

    def has_pending(self) -> bool:
        return any(job.is_pending for job in self._jobs)

    def get(self, job_id: str) -> Optional[GenerationJob]:
        for job in self._jobs:
            if job.id == job_id:
                return job
        return None

    def submit(self, request) -> GenerationJob:
        """
        Insert an optimistic pending entry and dispatch the request in the background

        Must be called from a running event loop.

        Args:
            request: A tracked GenerationRequest variant

        Returns:
            The local pending job (temporary id)

        Raises:
            ValidationFailedError: Background-grid requests are not tracked
        """
        if isinstance(request, BackgroundGridGeneration):
            raise ValidationFailedError("Background grid generations are not tracked as jobs")
        if request.shot_id != self.shot_id:
            raise ValidationFailedError(
                f"Request targets shot {request.shot_id}, tracker is bound to {self.shot_id}"
            )

        local_job = GenerationJob.pending_from_request(request)
        self._jobs.insert(0, local_job)

        task = asyncio.get_running_loop().create_task(self._dispatch(request, local_job.id))
        task.add_done_callback(self._dispatch_done)
        self._tasks[local_job.id] = task

        logger.info(
            "generation_submitted",
            shot_id=self.shot_id,
            temp_id=local_job.id,
            mode=request.mode,
        )
        return local_job

    async def confirm(self, temp_id: str) -> str:
        """
        Wait for the dispatch of a submitted job

        Args:
            temp_id: Temporary id returned by :meth:`submit`

        Returns:
            The durable job id, or the temporary id if the service returned none

        Raises:
            DispatchError: The request never became a job
        """
        task = self._tasks.get(temp_id)
        if task is None:
            raise NotFoundError(f"Unknown generation job: {temp_id}")
        try:
            return await asyncio.shield(task)
        except DispatchError as e:
            # Reported to this caller; keep it out of the drained backlog
            if e in self._dispatch_errors:
                self._dispatch_errors.remove(e)
            raise

    async def _dispatch(self, request, temp_id: str) -> str:
        try:
            result = await self.client.dispatch_generation(request)
        except ShotdeskError as e:
            self._discard(temp_id)
            log_dispatch_failure(self.shot_id, temp_id, e.message, mode=request.mode)
            raise DispatchError(
                f"Generation failed to start: {e.message}",
                temp_id=temp_id,
                suggested_modifications=e.suggested_modifications,
            ) from e

        if not result.success:
            self._discard(temp_id)
            detail = result.detail or "generation service refused the request"
            log_dispatch_failure(self.shot_id, temp_id, detail, mode=request.mode)
            raise DispatchError(f"Generation failed to start: {detail}", temp_id=temp_id)

        if result.job_id and self._alive:
            self._rekey(temp_id, result.job_id)
        elif self._alive:
            self._accepted[temp_id] = self._fetches
            logger.info("generation_accepted_without_id", shot_id=self.shot_id, temp_id=temp_id)
        return result.job_id or temp_id

    def _dispatch_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if isinstance(error, DispatchError):
            self._dispatch_errors.append(error)
        elif error is not None:
            logger.error("generation_dispatch_crashed", shot_id=self.shot_id, error=str(error))

    def drain_errors(self) -> List[DispatchError]:
        """Return and clear dispatch errors not yet shown to the user"""
        errors, self._dispatch_errors = self._dispatch_errors, []
        return errors

    def _discard(self, temp_id: str) -> None:
        self._jobs = [job for job in self._jobs if job.id != temp_id]

    def _rekey(self, temp_id: str, job_id: str) -> None:
        if any(job.id == job_id for job in self._jobs):
            # Server copy already merged in; drop the optimistic duplicate
            self._discard(temp_id)
            return
        for index, job in enumerate(self._jobs):
            if job.id == temp_id:
                self._jobs[index] = job.model_copy(update={"id": job_id})
                logger.info("generation_rekeyed", shot_id=self.shot_id, temp_id=temp_id, job_id=job_id)
                return

    def _superseded(self, job: GenerationJob, fetch_index: Optional[int]) -> bool:
        accepted_before = self._accepted.get(job.id)
        if accepted_before is None:
            return False
        return fetch_index is None or fetch_index >= accepted_before

    def _is_stale(self, job: GenerationJob, now: datetime) -> bool:
        task = self._tasks.get(job.id)
        if task is not None and not task.done():
            return False
        return now - job.created_at > timedelta(seconds=self.unconfirmed_ttl_s)

    def reconcile(
        self,
        snapshot: List[GenerationJob],
        now: Optional[datetime] = None,
        fetch_index: Optional[int] = None,
    ) -> List[GenerationJob]:
        """
        Merge an authoritative snapshot into the local view

        Local pending jobs missing from the snapshot are kept (the server has
        not seen them yet) unless they outlived the unconfirmed TTL with no
        dispatch in flight. An entry the service accepted without returning an
        id is dropped once a snapshot fetched after the acceptance arrives. Every
        other local entry is replaced by the snapshot.

        Args:
            snapshot: Jobs reported by the generation service
            now: Reference time for TTL checks
            fetch_index: Order of the fetch that produced the snapshot (None: current)

        Returns:
            The merged view
        """
        if not self._alive:
            return self.jobs

        now = now or utcnow()
        snapshot_ids = {job.id for job in snapshot}
        preserved = []
        for job in self._jobs:
            if not job.is_pending or job.id in snapshot_ids:
                continue
            if self._superseded(job, fetch_index):
                self._accepted.pop(job.id, None)
                continue
            if self._is_stale(job, now):
                logger.warning("unconfirmed_generation_dropped", shot_id=self.shot_id, job_id=job.id)
                continue
            preserved.append(job)

        self._jobs = merge_jobs(preserved, snapshot)
        log_reconcile(
            self.shot_id,
            snapshot_size=len(snapshot),
            preserved_pending=len(preserved),
            merged_size=len(self._jobs),
            has_pending=self.has_pending(),
        )
        return self.jobs

    async def refresh(self) -> List[GenerationJob]:
        """
        Fetch a snapshot and reconcile it

        A network failure keeps the previous view; a response arriving after
        :meth:`close` is dropped.

        Returns:
            The merged view
        """
        fetch_index = self._fetches
        self._fetches += 1
        try:
            snapshot = await self.client.list_generations(self.shot_id)
        except TransientNetworkError as e:
            logger.warning("generation_refresh_failed", shot_id=self.shot_id, error=e.message)
            return self.jobs

        if not self._alive:
            logger.debug("generation_refresh_dropped", shot_id=self.shot_id)
            return self.jobs
        return self.reconcile(snapshot, fetch_index=fetch_index)

    def retry_from(self, job_id: str, user_email: str = "") -> GenerationJob:
        """
        Restore a job's settings and submit them as a new job

        Args:
            job_id: Job whose settings are reused (usually a failed one)
            user_email: Email of the user re-submitting

        Returns:
            The new local pending job

        Raises:
            NotFoundError: Job is not in the current view
            ValidationFailedError: The stored settings no longer form a valid request
        """
        job = self.get(job_id)
        if job is None:
            raise NotFoundError(f"Unknown generation job: {job_id}")
        try:
            request = request_from_job(job, user_email=user_email)
        except ValueError as e:
            raise ValidationFailedError(f"Cannot restore settings of {job_id}: {e}") from e
        return self.submit(request)

    def close(self) -> None:
        """Mark the owning context as gone; late responses are ignored from now on"""
        self._alive = False
