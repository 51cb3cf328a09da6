from fastapi import APIRouter, Depends

from ..aps_service import ApsService
from ..dependencies import get_aps_service
from ..models import AccessToken

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.get("/token", response_model=AccessToken)
async def get_viewer_token(service: ApsService = Depends(get_aps_service)) -> AccessToken:
    """Issue a read-only token for the browser viewer."""
    return await service.get_viewer_token()
