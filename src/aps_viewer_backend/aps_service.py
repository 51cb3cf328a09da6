"""
Cloud facade over the APS authentication, OSS and Model Derivative APIs.

This module is the only place that sequences remote calls:
- Issuing viewer tokens and fresh internal tokens
- Creating the application bucket on first use
- Listing (with pagination) and uploading design files
- Starting translation jobs and fetching their manifests

Access tokens are never cached: every operation that needs elevated scopes
requests its own internal token.
"""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

from .clients import AuthenticationClient, ModelDerivativeClient, OssClient, PolicyKey, Scopes
from .configuration import Settings
from .errors import ApsConflictError, ApsNotFoundError
from .models import AccessToken, Manifest, ObjectDetails, TranslationJob

logger = logging.getLogger(__name__)

PAGE_SIZE = 64

INTERNAL_SCOPES = [
    Scopes.DATA_READ,
    Scopes.DATA_CREATE,
    Scopes.DATA_WRITE,
    Scopes.BUCKET_CREATE,
    Scopes.BUCKET_READ,
]


def urnify(object_id: str) -> str:
    """
    Convert an OSS object id into the URN used by Model Derivative.

    Example:
        >>> urnify("ABC")
        "QUJD"
    """
    return base64.b64encode(object_id.encode("utf-8")).decode("ascii").replace("=", "")


def _start_at_from(next_url: str) -> Optional[str]:
    values = parse_qs(urlparse(next_url).query).get("startAt")
    return values[0] if values else None


class ApsService:
    """
    Facade used by the route handlers.

    Attributes:
        settings: Process-wide settings (credentials, bucket, region)
        auth: Authentication API client
        oss: Object Storage Service client
        model_derivative: Model Derivative API client
    """

    def __init__(
        self,
        settings: Settings,
        auth: AuthenticationClient,
        oss: OssClient,
        model_derivative: ModelDerivativeClient,
    ) -> None:
        self.settings = settings
        self.auth = auth
        self.oss = oss
        self.model_derivative = model_derivative

    @property
    def bucket(self) -> str:
        return self.settings.bucket

    async def get_viewer_token(self) -> AccessToken:
        return await self.auth.get_two_legged_token(
            self.settings.client_id, self.settings.client_secret, [Scopes.VIEWABLES_READ]
        )

    async def _get_internal_token(self) -> str:
        credentials = await self.auth.get_two_legged_token(
            self.settings.client_id, self.settings.client_secret, INTERNAL_SCOPES
        )
        return credentials.access_token

    async def ensure_bucket_exists(self, bucket_key: str) -> None:
        """
        Create the bucket with a persistent retention policy if it is missing.

        Only a 404 from the details probe triggers creation; any other failure
        is re-raised untouched. A 409 on creation means another request created
        the bucket first and is treated as success.
        """
        access_token = await self._get_internal_token()
        try:
            await self.oss.get_bucket_details(bucket_key, access_token)
            return
        except ApsNotFoundError:
            logger.info(f"Bucket {bucket_key} not found, creating it in region {self.settings.region}")

        try:
            await self.oss.create_bucket(self.settings.region, bucket_key, PolicyKey.PERSISTENT, access_token)
        except ApsConflictError:
            logger.info(f"Bucket {bucket_key} was created concurrently, continuing")

    async def list_objects(self) -> List[ObjectDetails]:
        await self.ensure_bucket_exists(self.bucket)
        access_token = await self._get_internal_token()

        page = await self.oss.get_objects(self.bucket, access_token, limit=PAGE_SIZE)
        objects = list(page.items)
        while page.next:
            start_at = _start_at_from(page.next)
            page = await self.oss.get_objects(self.bucket, access_token, limit=PAGE_SIZE, start_at=start_at)
            objects.extend(page.items)
        return objects

    async def upload_object(self, object_name: str, file_path: Path) -> ObjectDetails:
        await self.ensure_bucket_exists(self.bucket)
        access_token = await self._get_internal_token()
        obj = await self.oss.upload_object(self.bucket, object_name, file_path, access_token)
        logger.info(f"Uploaded {object_name} as {obj.object_id}")
        return obj

    async def translate_object(self, urn: str, root_filename: str = "") -> TranslationJob:
        """
        Start an SVF2 translation producing both 2D and 3D views.

        Args:
            urn: URN of the uploaded design (see urnify)
            root_filename: Entry point inside a zip archive; empty for a
                single design file

        Returns:
            The job acceptance result, not the final manifest
        """
        access_token = await self._get_internal_token()
        job_input: Dict[str, Any] = {"urn": urn, "compressedUrn": bool(root_filename)}
        if root_filename:
            job_input["rootFilename"] = root_filename
        payload = {
            "input": job_input,
            "output": {"formats": [{"type": "svf2", "views": ["2d", "3d"]}]},
        }
        job = await self.model_derivative.start_job(payload, access_token)
        logger.info(f"Translation job for {urn} accepted with result {job.result}")
        return job

    async def get_manifest(self, urn: str) -> Optional[Manifest]:
        """Return the manifest for ``urn``, or None while no translation exists for it."""
        access_token = await self._get_internal_token()
        try:
            return await self.model_derivative.get_manifest(urn, access_token)
        except ApsNotFoundError:
            return None

    urnify = staticmethod(urnify)
