import asyncio
import logging
import time

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from assessment_api.config import get_settings
from assessment_api.shared.exceptions import AssessmentServiceError, RequestValidationFailed
from assessment_api.shared.mailer import SMTPMailer
from assessment_api.shared.rate_limit import limiter
from assessment_api.api import assessment
from assessment_api.database import Base, get_engine
from assessment_api.orchestrator.pipeline import close_pipeline
import assessment_api.models  # noqa: F401 - Import models so Base.metadata knows about all tables

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
    "X-DNS-Prefetch-Control": "off",
}

app = FastAPI(
    title=settings.app_name,
    description="Lead-magnet IT assessment generation API",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    # CORS preflight is answered with 200 by the middleware; clients expect 204
    if request.method == "OPTIONS" and response.status_code == 200:
        headers = {
            key: value
            for key, value in response.headers.items()
            if key.lower() not in ("content-length", "content-type")
        }
        response = Response(status_code=204, headers=headers)
    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    return response


if not settings.is_production():
    @app.middleware("http")
    async def access_log(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        client = request.client.host if request.client else "-"
        logger.info(f'{client} "{request.method} {request.url.path}" {response.status_code} {elapsed_ms:.1f}ms')
        return response


# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# Global exception handler for application errors
@app.exception_handler(AssessmentServiceError)
async def assessment_error_handler(request: Request, exc: AssessmentServiceError):
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__}: {exc.message} ({exc.detail})")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})
    if isinstance(exc, RequestValidationFailed):
        return JSONResponse(status_code=exc.status_code, content={"errors": exc.errors})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})


# Register routers
app.include_router(assessment.router)


@app.options("/{path:path}", include_in_schema=False)
async def preflight(path: str):
    return Response(status_code=204)


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": settings.app_name}


@app.on_event("startup")
async def startup():
    logger.info(f"Starting {settings.app_name}")
    if settings.create_tables_on_startup:
        async with get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")
    await asyncio.to_thread(SMTPMailer(settings).verify)


@app.on_event("shutdown")
async def shutdown():
    await close_pipeline()
    await get_engine().dispose()
    logger.info("Application shutdown complete")
