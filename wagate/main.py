"""FastAPI application entry point - WhatsApp session gateway"""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, JSONResponse

from wagate.config import PROJECT_ROOT, settings, validate_settings
from wagate.core.logging import log, setup_logging
from wagate.core.exceptions import AppException
from wagate.api.routes import baileys, session, system
from wagate.gateway import build_gateway

PUBLIC_DIR = PROJECT_ROOT / "public"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    setup_logging(debug=settings.DEBUG, log_format=settings.LOG_FORMAT)
    validate_settings()
    log.info(f"Starting {settings.APP_NAME}...")
    log.info(f"Environment: {settings.current_env}")

    gateway = build_gateway(settings)
    # Fail fast: nothing works without a writable sessions root
    gateway.paths.ensure_root()
    app.state.gateway = gateway

    if settings.AUTO_RESTORE:
        try:
            await gateway.restore_sessions(settings.get("SESSION_ID", ""))
        except Exception as e:
            log.warning(f"Session restore failed (non-fatal): {e}")

    yield

    log.info("Shutting down...")
    await gateway.shutdown()


app = FastAPI(
    title=settings.APP_NAME,
    description="Multi-tenant WhatsApp session gateway",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Log all requests."""
    request_id = str(uuid.uuid4())[:8]
    start_time = time.time()
    request.state.request_id = request_id

    with log.contextualize(request_id=request_id):
        log.debug(f"Request started {request.method} {request.url.path}")
        response = await call_next(request)
        duration_ms = (time.time() - start_time) * 1000
        log.info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({round(duration_ms, 2)} ms)"
        )

    return response


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """Handle application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, **exc.details},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    log.exception("Unhandled exception")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
    )


# Routes
app.include_router(session.router, tags=["session"])
app.include_router(system.router, tags=["system"])
app.include_router(baileys.router, prefix="/baileys", tags=["baileys"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.APP_NAME}


@app.get("/")
async def root():
    """Landing page."""
    index = PUBLIC_DIR / "index.html"
    if index.is_file():
        return FileResponse(index)
    return {"app": settings.APP_NAME, "version": "0.1.0"}
