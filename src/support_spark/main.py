"""
# SupportSpark - Main Application Module

Entry point and lifecycle orchestrator for the SupportSpark FastAPI application.

## Architecture Overview

```
FastAPI application
  ├── Middleware: CORS, request logging
  ├── Routers: auth, supporters, conversations, demo (DEMO_MODE), health
  ├── Exception handlers: domain errors -> {"error": {"code", "message"}}
  └── Lifespan: ServiceContainer start / close
           │
           ▼
  Session Manager ─ Rate Limiter ─ Relationship Ledger ─ Conversation Engine
           │                               │                     │
      SessionStore                    repositories (memory or MongoDB)
   (memory or Redis)
```

## Lifespan

Startup:
1. **Logging**: handlers are configured and `startup_initiated` is logged.
2. **Storage**: MongoDB is connected (with retries) and indexes are created when
   `STORAGE_BACKEND=mongodb`.
3. **Demo data**: seeded when `DEMO_MODE` is enabled.

Shutdown closes Redis and MongoDB clients.

## Errors

Every `SupportSparkError` is rendered as `{"error": {"code": ..., "message": ...}}`
with the class's status code; `RateLimited` adds a `Retry-After` header. Request
validation errors are rendered as 400 `INVALID_INPUT`.

## Running

```bash
uvicorn support_spark.main:app --reload --host 0.0.0.0 --port 8000
```
"""

from contextlib import asynccontextmanager
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
import uvicorn

from support_spark import __version__
from support_spark.config import Settings, settings as default_settings
from support_spark.container import ServiceContainer
from support_spark.exceptions import RateLimited, SupportSparkError
from support_spark.managers.logging_manager import configure_logging, get_logger
from support_spark.routes import auth_router, conversations_router, demo_router, health_router, supporters_router
from support_spark.utils.logging_utils import (
    RequestLoggingMiddleware,
    log_application_lifecycle,
    log_error_with_context,
)

logger = get_logger(prefix="[MAIN]")


def error_response(status_code: int, code: str, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
        headers=headers,
    )


async def support_spark_error_handler(request: Request, exc: SupportSparkError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimited) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    if exc.status_code >= 500:
        log_error_with_context(exc, {"path": request.url.path, "method": request.method})
    return error_response(exc.status_code, exc.code, exc.message, headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid input") if errors else "Invalid input"
    return error_response(400, "INVALID_INPUT", message)


def create_app(settings: Optional[Settings] = None, services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Configuration; defaults to the process-wide settings.
        services: A pre-built container. When omitted, one is built from `settings` at startup.
            A container passed in is started and closed by the lifespan all the same.
    """
    settings = settings or default_settings
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        startup_start_time = time.time()
        log_application_lifecycle(
            "startup_initiated",
            {
                "app_name": settings.APP_NAME,
                "version": __version__,
                "environment": "production" if settings.is_production else "development",
                "storage_backend": settings.STORAGE_BACKEND,
                "session_backend": settings.SESSION_BACKEND,
                "demo_mode": settings.DEMO_MODE,
            },
        )
        container = services or ServiceContainer(settings)
        try:
            await container.start()
        except Exception as e:
            log_error_with_context(e, {"operation": "startup"})
            await container.close()
            raise
        app.state.services = container
        log_application_lifecycle(
            "startup_completed", {"startup_duration": f"{time.time() - startup_start_time:.3f}s"}
        )

        yield

        shutdown_start_time = time.time()
        log_application_lifecycle("shutdown_initiated")
        await container.close()
        log_application_lifecycle(
            "shutdown_completed", {"shutdown_duration": f"{time.time() - shutdown_start_time:.3f}s"}
        )

    app = FastAPI(
        title=settings.APP_NAME,
        description="Private support networks: journey updates shared with trusted supporters.",
        version=__version__,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Authentication", "description": "Registration, login, logout and credential rotation"},
            {"name": "Supporters", "description": "Invitations and supporter relationships"},
            {"name": "Conversations", "description": "Journey conversations and messages"},
            {"name": "Demo", "description": "Demo account logins (demo mode only)"},
            {"name": "Health", "description": "Service health"},
        ],
    )

    app.add_exception_handler(SupportSparkError, support_spark_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    logger.info(f"Configuring CORS with origins: {settings.cors_origins_list}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        max_age=3600,
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(auth_router)
    app.include_router(supporters_router)
    app.include_router(conversations_router)
    app.include_router(health_router)
    if settings.DEMO_MODE:
        app.include_router(demo_router)
    log_application_lifecycle("routers_configured", {"demo_routes": settings.DEMO_MODE})

    if settings.METRICS_ENABLED:
        try:
            instrumentator = Instrumentator(
                should_group_status_codes=True,
                should_ignore_untemplated=True,
                should_respect_env_var=False,
                should_instrument_requests_inprogress=True,
            )
            instrumentator.instrument(app).expose(app, include_in_schema=False, endpoint="/metrics")
            log_application_lifecycle("prometheus_configured", {"metrics_endpoint": "/metrics"})
        except Exception as e:
            log_error_with_context(e, {"operation": "prometheus_setup"})
            logger.error(f"Failed to configure Prometheus metrics: {e}")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "support_spark.main:app",
        host=default_settings.HOST,
        port=default_settings.PORT,
        reload=default_settings.DEBUG,
        log_level="info",
    )
