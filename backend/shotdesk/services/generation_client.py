"""
Generation Client - Image generation service integration
"""

from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from shotdesk.config.settings import settings
from shotdesk.models.generation import (
    AnglesGeneration,
    AutomaticGeneration,
    BackgroundGridGeneration,
    DispatchResult,
    EnhancerGeneration,
    GenerationJob,
    ManualGeneration,
)
from shotdesk.services.error_classifier import ErrorClassifier
from shotdesk.services.errors import CollaboratorError
from shotdesk.services.observability import logger


class GenerationClient:
    """
    Client for the image generation service

    ``dispatch_generation`` starts a job and returns as soon as the service has
    accepted it; ``list_generations`` is the authoritative, idempotent snapshot
    used as the polling target.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize generation client

        Args:
            base_url: Service URL (defaults to settings.generation_service_url)
            timeout_s: Request timeout (defaults to settings.http_timeout_s)
            transport: Optional httpx transport, used by tests
        """
        self.base_url = (base_url or settings.generation_service_url).rstrip("/")
        self.timeout_s = timeout_s or settings.http_timeout_s
        self.transport = transport
        self.error_classifier = ErrorClassifier()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_s,
            transport=self.transport,
        )

    async def dispatch_generation(self, request) -> DispatchResult:
        """
        Submit a generation request of any mode

        Args:
            request: One of the GenerationRequest variants

        Returns:
            DispatchResult; ``job_id`` is set for tracked modes, ``urls`` for background grids

        Raises:
            TransientNetworkError: Service unreachable or temporarily failing
            CollaboratorError: Service rejected the request
        """
        path, form = self._build_form(request)
        logger.info(
            "dispatch_generation",
            shot_id=request.shot_id,
            mode=request.mode,
            model=request.model_id,
            prompt_length=len(request.prompt),
        )

        try:
            async with self._client() as client:
                response = await client.post(path, data=form)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            raise self.error_classifier.to_exception(e) from e

        try:
            result = DispatchResult.model_validate(payload)
        except ValidationError as e:
            raise CollaboratorError(f"Malformed dispatch response: {e}") from e

        # Background grid answers with URLs and no success flag
        if isinstance(request, BackgroundGridGeneration) and result.urls:
            result.success = True

        logger.info(
            "generation_dispatched",
            shot_id=request.shot_id,
            mode=request.mode,
            success=result.success,
            job_id=result.job_id,
        )
        return result

    async def list_generations(self, shot_id: str) -> List[GenerationJob]:
        """
        Fetch the authoritative generation list for a shot

        Args:
            shot_id: Shot identifier

        Returns:
            Jobs as reported by the service (records that fail to parse are skipped)

        Raises:
            TransientNetworkError: Service unreachable or temporarily failing
            CollaboratorError: Service rejected the request
        """
        try:
            async with self._client() as client:
                response = await client.get(f"/generation/{shot_id}")
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            raise self.error_classifier.to_exception(e) from e

        if not isinstance(payload, list):
            raise CollaboratorError("Generation list response is not a list")

        jobs: List[GenerationJob] = []
        for record in payload:
            try:
                jobs.append(GenerationJob.model_validate(record))
            except ValidationError as e:
                logger.warning(
                    "generation_record_skipped",
                    shot_id=shot_id,
                    record_id=record.get("id") if isinstance(record, dict) else None,
                    error=str(e),
                )
        return jobs

    def _build_form(self, request) -> "tuple[str, Dict[str, Any]]":
        """
        Build endpoint path and form fields for a request, by mode

        Args:
            request: One of the GenerationRequest variants

        Returns:
            (path, form fields)
        """
        if isinstance(request, BackgroundGridGeneration):
            form: Dict[str, Any] = {
                "background_url": request.background_url,
                "shot_id": request.shot_id,
                "user_email": request.user_email,
                "aspect_ratio": request.aspect_ratio,
            }
            if request.prompt:
                form["context"] = request.prompt
            return "/generation/background-grid", form

        form = {
            "prompt": request.prompt,
            "mode": request.mode,
            "shot_id": request.shot_id,
            "user_email": request.user_email or "Unknown",
            "model": request.model_id,
            "aspect_ratio": request.aspect_ratio,
        }
        if request.resolution:
            form["resolution"] = request.resolution

        if isinstance(request, ManualGeneration):
            if request.ref_images:
                form["ref_image_urls"] = [ref.url for ref in request.ref_images]

        elif isinstance(request, AutomaticGeneration):
            optional = {
                "auto_storyboard_url": request.storyboard_url,
                "auto_lighting_url": request.lighting_url,
                "auto_background_url": request.background_url,
            }
            form.update({key: value for key, value in optional.items() if value})
            if request.characters:
                form["auto_character_urls"] = [c.url for c in request.characters]

        elif isinstance(request, EnhancerGeneration):
            if request.storyboard_url:
                form["auto_storyboard_url"] = request.storyboard_url

        elif isinstance(request, AnglesGeneration):
            optional = {
                "angles_angle": request.angle,
                "angles_length": request.length,
                "angles_focus": request.focus,
                "angles_background": request.background,
                "angles_anchor_url": request.anchor_url,
                "angles_target_url": request.target_url,
            }
            form.update({key: value for key, value in optional.items() if value})

        else:
            raise ValueError(f"Unsupported generation mode: {getattr(request, 'mode', None)}")

        return "/generation/create", form
