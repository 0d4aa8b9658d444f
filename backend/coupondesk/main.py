from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from coupondesk.api.v1 import api_router
from coupondesk.core.config import settings
from coupondesk.core.logging_config import configure_logging
from coupondesk.middleware import RequestLoggingMiddleware
from coupondesk.schemas.error import ErrorResponse


def get_application() -> FastAPI:
    configure_logging(settings.log_json, settings.log_level)
    tags_metadata = [
        {"name": "coupons", "description": "Coupon administration, validation and redemption"},
        {"name": "health", "description": "Liveness and readiness probes"},
        {"name": "metrics", "description": "In-process counters"},
    ]
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_tags=tags_metadata,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router, prefix="/api/v1")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        payload = ErrorResponse(detail=exc.detail, code=getattr(exc, "error_code", None))
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

    return app


app = get_application()
