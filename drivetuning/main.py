# drivetuning/main.py
"""
FastAPI application entry point.
Includes security middleware, global error handlers, and all routers.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from drivetuning.routers import legality, modifications, contributions, health
from drivetuning.database import create_tables
from drivetuning.config import settings
from drivetuning.services.reference_data import get_reference_data
from drivetuning.utils.errors import DriveTuningError
from drivetuning.utils.logger import get_logger
import time

logger = get_logger(__name__)

app = FastAPI(
    title="DriveTuning Legality API",
    description="Regional rules, legal citations, evidence scoring, TÜV readiness and contribution review.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── API Key Middleware ───────────────────────────────────────────────────────
class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Optional shared-secret check between the auth gateway and this service.
    Set API_KEY in .env. Leave empty to disable.
    """
    async def dispatch(self, request: Request, call_next):
        open_paths = {"/api/v1/health", "/docs", "/redoc", "/openapi.json"}
        if request.url.path in open_paths or not settings.API_KEY:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key") or request.query_params.get("api_key")
        if api_key != settings.API_KEY:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid or missing API key"},
            )
        return await call_next(request)


if settings.API_KEY:
    app.add_middleware(APIKeyMiddleware)


# ── Request Timing Middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 2)
    logger.debug(f"{request.method} {request.url.path} → {response.status_code} ({duration}ms)")
    return response


# ── Exception Handlers ───────────────────────────────────────────────────────
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid input", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(DriveTuningError)
async def domain_exception_handler(request: Request, exc: DriveTuningError):
    logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(legality.router,      prefix="/api/v1", tags=["Legality reference"])
app.include_router(modifications.router, prefix="/api/v1", tags=["Cars & modifications"])
app.include_router(contributions.router, prefix="/api/v1", tags=["Contributions"])
app.include_router(health.router,        prefix="/api/v1", tags=["Health"])


# ── Startup ───────────────────────────────────────────────────────────────────
@app.on_event("startup")
async def startup():
    logger.info("DriveTuning backend starting up...")
    create_tables()
    logger.info("Database tables ready")
    get_reference_data()
    logger.info(f"Admin allow-list: {len(settings.ADMIN_USER_ID_SET)} ids, {len(settings.ADMIN_EMAIL_SET)} emails")
    logger.info(f"Listening on http://{settings.BACKEND_HOST}:{settings.BACKEND_PORT}")


@app.on_event("shutdown")
async def shutdown():
    logger.info("DriveTuning backend shutting down...")
