from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shipdesk.api.v1 import api_router
from shipdesk.core.config import Settings, get_settings
from shipdesk.core.errors import BackendError, NotFoundError, ShipdeskError, ValidationError
from shipdesk.core.logging_config import configure_logging
from shipdesk.core.redis_client import close_redis
from shipdesk.core.sentry import init_sentry
from shipdesk.middleware import RequestLoggingMiddleware
from shipdesk.schemas.error import ErrorResponse
from shipdesk.seeds import seed_if_empty
from shipdesk.services.backend_mode import LocalMode, dispose_backend_mode, select_backend_mode

_STATUS_BY_ERROR: tuple[tuple[type[ShipdeskError], int], ...] = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (BackendError, 503),
)


def get_application(app_settings: Settings | None = None) -> FastAPI:
    app_settings = app_settings or get_settings()
    configure_logging(app_settings.log_json)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        mode = select_backend_mode(app_settings)
        if isinstance(mode, LocalMode) and app_settings.seed_demo_data:
            seed_if_empty(mode.store)
        init_sentry(app_settings, backend_mode=mode.name)
        app.state.backend_mode = mode
        try:
            yield
        finally:
            await dispose_backend_mode(mode)
            await close_redis()

    app = FastAPI(
        title=app_settings.app_name,
        version=app_settings.app_version,
        openapi_tags=[{"name": "tracking", "description": "Public shipment tracking"}],
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router, prefix="/api/v1")

    @app.exception_handler(ShipdeskError)
    async def shipdesk_exception_handler(request: Request, exc: ShipdeskError):
        status_code = next((code for error_type, code in _STATUS_BY_ERROR if isinstance(exc, error_type)), 500)
        payload = ErrorResponse.from_error(exc)
        return JSONResponse(status_code=status_code, content=payload.model_dump())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        payload = ErrorResponse(detail=exc.detail, code=None)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(payload.model_dump()))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        payload = ErrorResponse(detail=errors, code="validation_error")
        return JSONResponse(status_code=422, content=payload.model_dump())

    return app


app = get_application()
