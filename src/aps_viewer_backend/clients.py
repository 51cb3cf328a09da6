"""
Thin async clients for the three APS REST APIs used by the backend.

Each client wraps one shared ``httpx.AsyncClient`` whose ``base_url`` points
at the APS host, so tests can swap the transport for a fake. Clients hold no
credentials of their own: every call receives the access token to use.

- AuthenticationClient: two-legged OAuth tokens
- OssClient: buckets, object listing and signed S3 uploads
- ModelDerivativeClient: translation jobs and manifests
"""

from __future__ import annotations

import logging
import math
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Optional
from urllib.parse import quote

import anyio
import httpx

from .errors import raise_for_aps_status
from .models import AccessToken, BucketDetails, Manifest, ObjectDetails, ObjectsPage, SignedUpload, TranslationJob

logger = logging.getLogger(__name__)

# Smallest part size accepted for multi-part signed uploads.
UPLOAD_CHUNK_SIZE = 5 * 1024 * 1024
# Signed URLs handed out per signeds3upload request.
MAX_URLS_PER_REQUEST = 25


class Scopes:
    VIEWABLES_READ = "viewables:read"
    DATA_READ = "data:read"
    DATA_CREATE = "data:create"
    DATA_WRITE = "data:write"
    BUCKET_CREATE = "bucket:create"
    BUCKET_READ = "bucket:read"


class PolicyKey:
    TRANSIENT = "transient"
    TEMPORARY = "temporary"
    PERSISTENT = "persistent"


def _bearer(access_token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


class AuthenticationClient:
    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    async def get_two_legged_token(self, client_id: str, client_secret: str, scopes: Iterable[str]) -> AccessToken:
        response = await self.http.post(
            "/authentication/v2/token",
            auth=(client_id, client_secret),
            data={"grant_type": "client_credentials", "scope": " ".join(scopes)},
            headers={"Accept": "application/json"},
        )
        raise_for_aps_status(response)
        return AccessToken.model_validate(response.json())


class OssClient:
    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    @staticmethod
    def _bucket_path(bucket_key: str) -> str:
        return f"/oss/v2/buckets/{quote(bucket_key, safe='')}"

    def _object_path(self, bucket_key: str, object_name: str) -> str:
        return f"{self._bucket_path(bucket_key)}/objects/{quote(object_name, safe='')}"

    async def get_bucket_details(self, bucket_key: str, access_token: str) -> BucketDetails:
        response = await self.http.get(f"{self._bucket_path(bucket_key)}/details", headers=_bearer(access_token))
        raise_for_aps_status(response)
        return BucketDetails.model_validate(response.json())

    async def create_bucket(self, region: str, bucket_key: str, policy_key: str, access_token: str) -> BucketDetails:
        headers = {**_bearer(access_token), "x-ads-region": region}
        response = await self.http.post(
            "/oss/v2/buckets",
            json={"bucketKey": bucket_key, "policyKey": policy_key},
            headers=headers,
        )
        raise_for_aps_status(response)
        return BucketDetails.model_validate(response.json())

    async def get_objects(
        self,
        bucket_key: str,
        access_token: str,
        limit: int = 64,
        start_at: Optional[str] = None,
    ) -> ObjectsPage:
        params: Dict[str, Any] = {"limit": limit}
        if start_at:
            params["startAt"] = start_at
        response = await self.http.get(
            f"{self._bucket_path(bucket_key)}/objects",
            params=params,
            headers=_bearer(access_token),
        )
        raise_for_aps_status(response)
        return ObjectsPage.model_validate(response.json())

    async def _get_signed_urls(
        self,
        bucket_key: str,
        object_name: str,
        access_token: str,
        first_part: int,
        parts: int,
        upload_key: Optional[str],
    ) -> SignedUpload:
        params: Dict[str, Any] = {"parts": parts, "firstPart": first_part}
        if upload_key:
            params["uploadKey"] = upload_key
        response = await self.http.get(
            f"{self._object_path(bucket_key, object_name)}/signeds3upload",
            params=params,
            headers=_bearer(access_token),
        )
        raise_for_aps_status(response)
        return SignedUpload.model_validate(response.json())

    async def upload_object(self, bucket_key: str, object_name: str, file_path: Path, access_token: str) -> ObjectDetails:
        """
        Upload a local file through the signed S3 upload flow.

        The file is split into UPLOAD_CHUNK_SIZE parts, each PUT directly to a
        pre-signed URL, and the upload is then finalized against OSS. Parts are
        read from disk one at a time.

        Returns:
            The object descriptor returned by OSS on completion

        Raises:
            ApsError: If any signing, part upload or completion call fails
        """
        file_size = os.path.getsize(file_path)
        total_parts = max(1, math.ceil(file_size / UPLOAD_CHUNK_SIZE))
        logger.info(f"Uploading {file_path} to {bucket_key}/{object_name} in {total_parts} part(s)")

        upload_key: Optional[str] = None
        part_number = 1
        with open(file_path, "rb") as handle:
            while part_number <= total_parts:
                batch = min(MAX_URLS_PER_REQUEST, total_parts - part_number + 1)
                signed = await self._get_signed_urls(
                    bucket_key, object_name, access_token, part_number, batch, upload_key
                )
                upload_key = signed.upload_key
                for url in signed.urls:
                    chunk = await anyio.to_thread.run_sync(handle.read, UPLOAD_CHUNK_SIZE)
                    response = await self.http.put(url, content=chunk)
                    raise_for_aps_status(response)
                    part_number += 1

        response = await self.http.post(
            f"{self._object_path(bucket_key, object_name)}/signeds3upload",
            json={"uploadKey": upload_key},
            headers=_bearer(access_token),
        )
        raise_for_aps_status(response)
        return ObjectDetails.model_validate(response.json())


class ModelDerivativeClient:
    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    async def start_job(self, job_payload: Dict[str, Any], access_token: str) -> TranslationJob:
        response = await self.http.post(
            "/modelderivative/v2/designdata/job",
            json=job_payload,
            headers=_bearer(access_token),
        )
        raise_for_aps_status(response)
        return TranslationJob.model_validate(response.json())

    async def get_manifest(self, urn: str, access_token: str) -> Manifest:
        response = await self.http.get(
            f"/modelderivative/v2/designdata/{quote(urn, safe='')}/manifest",
            headers=_bearer(access_token),
        )
        raise_for_aps_status(response)
        return Manifest.model_validate(response.json())
