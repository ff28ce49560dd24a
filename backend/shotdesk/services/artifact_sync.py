"""
Artifact Sync Client - Publishes the active version to its canonical drive location
"""

from typing import Optional

import httpx

from shotdesk.config.settings import settings
from shotdesk.services.error_classifier import ErrorClassifier
from shotdesk.services.observability import logger


class ArtifactSyncClient:
    """
    Client for the asset service's set-active-version endpoint

    Publishing is idempotent on the service side, so calling it again for an
    already-active version is safe.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.asset_service_url).rstrip("/")
        self.timeout_s = timeout_s or settings.http_timeout_s
        self.transport = transport
        self.error_classifier = ErrorClassifier()

    async def set_active_artifact(
        self,
        version_id: str,
        destination: Optional[str],
        shot_name: str,
    ) -> bool:
        """
        Publish a version as the shot's canonical artifact

        Args:
            version_id: Version to publish
            destination: Target drive folder id
            shot_name: File name used at the destination

        Returns:
            True when the service acknowledged the publish

        Raises:
            TransientNetworkError: Service unreachable or temporarily failing
            CollaboratorError: Service rejected the request
        """
        payload = {
            "version_id": version_id,
            "shot_name": shot_name,
            "target_folder_id": destination,
        }
        logger.info("set_active_artifact", version_id=version_id, destination=destination)

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_s,
                transport=self.transport,
            ) as client:
                response = await client.post("/assets/set_active_version", json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise self.error_classifier.to_exception(e) from e

        return True
