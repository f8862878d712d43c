import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from backoffice.api.v1 import api_router
from backoffice.core.config import settings
from backoffice.core.errors import StorageError
from backoffice.core.logging_config import configure_logging
from backoffice.core.sentry import init_sentry
from backoffice.middleware import RequestLoggingMiddleware
from backoffice.schemas.error import ErrorResponse

logger = logging.getLogger(__name__)

_DETAIL_STORAGE_FAILURE = "Temporary storage failure, please retry"


def get_application() -> FastAPI:
    configure_logging(settings.log_json)
    init_sentry()
    tags_metadata = [
        {"name": "auth", "description": "Admin authentication"},
        {"name": "coupons", "description": "Coupon registry, validation and redemption"},
        {"name": "health", "description": "Liveness and readiness checks"},
    ]
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_tags=tags_metadata,
        swagger_ui_parameters={"displayRequestDuration": True},
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router, prefix="/api/v1")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        payload = ErrorResponse(detail=exc.detail, code=getattr(exc, "code", None))
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(payload.model_dump()),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        payload = ErrorResponse(detail=errors, code="validation_error")
        return JSONResponse(status_code=422, content=payload.model_dump())

    @app.exception_handler(StorageError)
    async def storage_exception_handler(request: Request, exc: StorageError):
        logger.warning("storage_error_response", extra={"operation": exc.operation, "path": request.url.path})
        payload = ErrorResponse(detail=_DETAIL_STORAGE_FAILURE, code=exc.code)
        return JSONResponse(status_code=exc.status_code, content=payload.model_dump())

    return app


app = get_application()
