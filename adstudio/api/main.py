from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from adstudio.api.routers import (
    auth_router,
    billing_router,
    callbacks_router,
    credits_router,
    generations_router,
    health_router,
    jobs_router,
    uploads_router,
)
from adstudio.core.config import settings
from adstudio.core.errors import AppError, RateLimited
from adstudio.core.messaging import MessagePublisher
from adstudio.models import create_tables
from adstudio.providers import build_registry
from adstudio.services import StorageService

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    if settings.auto_create_tables:
        create_tables()

    app.state.providers = build_registry(settings)
    app.state.storage = StorageService(settings)
    app.state.publisher = MessagePublisher(settings.rabbitmq_url)
    try:
        app.state.storage.ensure_bucket_exists()
    except Exception as e:
        logger.error("bucket_check_failed", bucket=settings.storage_bucket, error=str(e))

    logger.info("api_started", callbacks=settings.callbacks_enabled, rehost=settings.rehost_media)
    yield

    app.state.providers.close()
    app.state.publisher.close()


app = FastAPI(
    title="AdStudio API",
    description="""
## AI ad-asset generation

Generates avatars, outfits, image ads, backgrounds, video ads, music and
voiceovers through third-party AI providers, billed in credits.

### Flow

1. Register at `/auth/register` (new accounts get signup credits)
2. Log in at `/auth/login` and send `Authorization: Bearer {token}`
3. Submit a generation, e.g. `POST /avatars/generate`, and keep the `taskId`
4. Poll `/jobs/{taskId}/status` until `COMPLETED` or `FAILED`
5. Failed generations are refunded automatically

### Errors

Every error is answered as `{"error": "message"}`.
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Health", "description": "Health check endpoints"},
        {"name": "Authentication", "description": "Registration and login"},
        {"name": "Credits", "description": "Balance and ledger"},
        {"name": "Generation", "description": "Submit generation jobs"},
        {"name": "Jobs", "description": "Job status and lifecycle"},
        {"name": "Uploads", "description": "Presigned image uploads"},
        {"name": "Billing", "description": "Subscription webhooks"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message)
    headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, RateLimited) else None
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message}, headers=headers)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.include_router(health_router)
app.include_router(auth_router, prefix=settings.api_prefix)
app.include_router(credits_router, prefix=settings.api_prefix)
app.include_router(generations_router, prefix=settings.api_prefix)
app.include_router(jobs_router, prefix=settings.api_prefix)
app.include_router(uploads_router, prefix=settings.api_prefix)
app.include_router(callbacks_router, prefix=settings.api_prefix)
app.include_router(billing_router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    return {"service": "adstudio-api", "version": "1.0.0", "docs": "/docs"}


def run() -> None:
    """Console entry point: ``adstudio-api``."""
    import uvicorn

    uvicorn.run("adstudio.api.main:app", host=settings.api_host, port=settings.api_port, reload=settings.debug)
