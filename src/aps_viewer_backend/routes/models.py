from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Dict, List
from uuid import uuid4

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile

from ..aps_service import ApsService, urnify
from ..dependencies import get_aps_service
from ..middleware import halt_on_timedout
from ..models import ModelEntry, TranslationStatus
from ..utils import ensure_directory, sanitize_filename

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/models", tags=["models"])


def collect_messages(derivatives: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Flatten the messages of every derivative and of its direct children."""
    messages: List[Dict[str, Any]] = []
    for derivative in derivatives:
        messages.extend(derivative.get("messages") or [])
        for child in derivative.get("children") or []:
            messages.extend(child.get("messages") or [])
    return messages


async def _store_upload(file: UploadFile, upload_root: Path) -> Path:
    upload_dir = ensure_directory(upload_root / uuid4().hex)
    destination = upload_dir / sanitize_filename(file.filename or "model")

    with destination.open("wb") as buffer:
        while chunk := await file.read(8 * 1024 * 1024):
            buffer.write(chunk)
    await file.close()
    return destination


@router.get("", response_model=list[ModelEntry])
async def list_models(request: Request, service: ApsService = Depends(get_aps_service)) -> list[ModelEntry]:
    objects = await service.list_objects()
    halt_on_timedout(request)
    return [ModelEntry(name=obj.object_key, urn=urnify(obj.object_id)) for obj in objects]


@router.post("", response_model=ModelEntry)
async def upload_model(
    request: Request,
    model_file: UploadFile = File(..., alias="model-file"),
    entrypoint: str = Form("", alias="model-zip-entrypoint"),
    service: ApsService = Depends(get_aps_service),
) -> ModelEntry:
    """
    Upload a design file and start its translation.

    ``model-zip-entrypoint`` names the root design inside a zip archive; leave
    it empty when uploading a single design file.
    """
    if not model_file.filename:
        raise HTTPException(status_code=400, detail="The uploaded file must have a filename")

    stored_path = await _store_upload(model_file, Path(service.settings.upload_dir))
    try:
        obj = await service.upload_object(model_file.filename, stored_path)
        halt_on_timedout(request)
        urn = urnify(obj.object_id)
        await service.translate_object(urn, entrypoint)
    finally:
        shutil.rmtree(stored_path.parent, ignore_errors=True)

    return ModelEntry(name=obj.object_key, urn=urn)


@router.get("/{urn:path}/status", response_model=TranslationStatus, response_model_exclude_none=True)
async def get_model_status(
    urn: str,
    request: Request,
    service: ApsService = Depends(get_aps_service),
) -> TranslationStatus:
    manifest = await service.get_manifest(urn)
    halt_on_timedout(request)
    if manifest is None:
        return TranslationStatus(status="n/a")
    return TranslationStatus(
        status=manifest.status,
        progress=manifest.progress,
        messages=collect_messages(manifest.derivatives),
    )
