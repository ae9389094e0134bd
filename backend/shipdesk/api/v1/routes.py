from fastapi import APIRouter, Depends

from shipdesk.api.v1 import tracking
from shipdesk.api.v1.tracking import get_backend_mode
from shipdesk.core.config import settings
from shipdesk.services.backend_mode import BackendMode

api_router = APIRouter()

api_router.include_router(tracking.router)


@api_router.get("/health", tags=["health"])
def healthcheck(mode: BackendMode = Depends(get_backend_mode)) -> dict[str, str]:
    return {"status": "ok", "backend_mode": mode.name, "version": settings.app_version}
