from fastapi import Request

from .aps_service import ApsService


def get_aps_service(request: Request) -> ApsService:
    return request.app.state.aps_service
