import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from config.database import Database
from config.logging_config import configure_logging
from config.settings import Settings, get_settings
from middleware.csrf import CSRF_HEADER_NAME, CSRFMiddleware
from middleware.rate_limit import RateLimiter, RateLimitMiddleware
from middleware.request_context import REQUEST_ID_HEADER, RequestContextMiddleware, RequestMetrics
from middleware.security_headers import SecurityHeadersMiddleware
from routes import (
    auth_routes,
    booking_routes,
    customer_routes,
    health_routes,
    reservation_routes,
    review_routes,
    salon_routes,
    service_routes,
    staff_routes
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"detail": {
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": {"errors": errors}
        }}
    )


def _database_error_handler(request: Request, exc: PyMongoError) -> JSONResponse:
    logger.error(f"Unhandled database error on {request.method} {request.url.path}: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={"detail": {"code": "DATABASE_ERROR", "message": "Database operation failed"}}
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_file)

    app = FastAPI(title="Salon Booking API", version="1.0.0")
    app.state.metrics = RequestMetrics()

    # Middleware added last runs first
    if settings.csrf_enabled:
        app.add_middleware(CSRFMiddleware, secure_cookie=settings.cookie_secure)
    if settings.rate_limit_enabled:
        app.add_middleware(RateLimitMiddleware, limiter=RateLimiter())
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.cookie_secure)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", CSRF_HEADER_NAME, REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER, "Location", "Retry-After"],
    )
    app.add_middleware(RequestContextMiddleware, metrics=app.state.metrics)

    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(PyMongoError, _database_error_handler)

    # Include all routers
    for module in (
        auth_routes,
        customer_routes,
        salon_routes,
        service_routes,
        staff_routes,
        reservation_routes,
        booking_routes,
        review_routes,
        health_routes,
    ):
        app.include_router(module.router, prefix=API_PREFIX)

    @app.on_event("startup")
    async def startup_db_client():
        try:
            await Database.connect_db()
        except Exception as e:
            logger.error(f"Error during startup: {str(e)}")
            raise

    @app.on_event("shutdown")
    async def shutdown_db_client():
        await Database.close_db()

    @app.get("/")
    def read_root():
        return {"message": "Welcome to Salon Booking API", "docs": "/docs", "api": API_PREFIX}

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
