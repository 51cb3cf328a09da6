from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ApsModel(BaseModel):
    """Base for payloads coming from APS: camelCase aliases, unknown fields kept."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class AccessToken(ApsModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int


class BucketDetails(ApsModel):
    bucket_key: str = Field(alias="bucketKey")
    bucket_owner: Optional[str] = Field(default=None, alias="bucketOwner")
    created_date: Optional[int] = Field(default=None, alias="createdDate")
    policy_key: Optional[str] = Field(default=None, alias="policyKey")


class ObjectDetails(ApsModel):
    bucket_key: str = Field(alias="bucketKey")
    object_key: str = Field(alias="objectKey")
    object_id: str = Field(alias="objectId")
    sha1: Optional[str] = None
    size: Optional[int] = None
    location: Optional[str] = None


class ObjectsPage(ApsModel):
    items: List[ObjectDetails] = Field(default_factory=list)
    next: Optional[str] = None


class SignedUpload(ApsModel):
    upload_key: str = Field(alias="uploadKey")
    urls: List[str]


class TranslationJob(ApsModel):
    result: str
    urn: str
    accepted_jobs: Optional[Dict[str, Any]] = Field(default=None, alias="acceptedJobs")


class Manifest(ApsModel):
    urn: Optional[str] = None
    status: str
    progress: Optional[str] = None
    has_thumbnail: Optional[str] = Field(default=None, alias="hasThumbnail")
    derivatives: List[Dict[str, Any]] = Field(default_factory=list)


# Responses served to the viewer client


class ModelEntry(BaseModel):
    name: str
    urn: str


class TranslationStatus(BaseModel):
    status: str
    progress: Optional[str] = None
    messages: Optional[List[Dict[str, Any]]] = None
