"""FastAPI backend for the music catalog.

This is the main entry point. It wires the track routes, the error
handlers and the request limits into one application.
"""

import time
from backend.config import get_settings
from backend.errors import CatalogError, PayloadTooLarge
from backend.logging_config import log_error, setup_logging
from backend.models.responses import ErrorResponse, HealthResponse
from backend.routes.tracks import router as tracks_router
from backend.services.database import get_db, init_db
from backend.services.tracks import init_track_service
from contextlib import asynccontextmanager
from eliot import log_message
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

settings = get_settings()

# Track startup time for health check
_start_time: float = 0


def error_response(error: CatalogError) -> JSONResponse:
    """Render a catalog error as an ErrorResponse body."""
    body = ErrorResponse(error=error.code, detail=error.message)
    return JSONResponse(status_code=error.status_code, content=body.model_dump())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    global _start_time
    _start_time = time.time()

    current = get_settings()
    setup_logging(current.LOG_LEVEL, current.LOG_FILE)

    current.UPLOADS_DIR.mkdir(parents=True, exist_ok=True)
    db = init_db(current.DATABASE_PATH)
    init_track_service(db, current.UPLOADS_DIR)

    log_message(
        message_type="application_ready",
        message=f"{current.APP_NAME} v{current.APP_VERSION} started",
        database=str(current.DATABASE_PATH),
        uploads=str(current.UPLOADS_DIR),
    )

    yield

    log_message(message_type="application_shutdown", message=f"{current.APP_NAME} shutting down")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="REST API for browsing and managing the music catalog",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted(settings.CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization", "Content-Disposition"],
)


@app.middleware("http")
async def limit_body_size(request: Request, call_next):
    """Reject requests whose declared body exceeds MAX_BODY_SIZE before reading it."""
    limit = get_settings().MAX_BODY_SIZE
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        return error_response(PayloadTooLarge(f"Request body too large. Maximum size is {limit} bytes."))
    return await call_next(request)


@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    body = ErrorResponse(error="VALIDATION_ERROR", detail=f"{location}: {first.get('msg', 'invalid request')}")
    return JSONResponse(status_code=400, content=body.model_dump())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log_error(exc, path=request.url.path, method=request.method)
    body = ErrorResponse(error="INTERNAL_ERROR", detail=str(exc))
    return JSONResponse(status_code=500, content=body.model_dump())


# Include routers
app.include_router(tracks_router, prefix="/api")


@app.get("/")
async def root():
    """Service banner."""
    return {"message": f"{settings.APP_NAME} v{settings.APP_VERSION}"}


@app.get("/api/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    try:
        db = get_db()
        # Quick database check
        with db.get_connection() as conn:
            conn.cursor().execute("SELECT 1")
        db_status = "connected"
    except Exception:
        db_status = "error"

    uptime = int(time.time() - _start_time) if _start_time else 0

    return HealthResponse(
        status="healthy",
        version=settings.APP_VERSION,
        database=db_status,
        uptime_seconds=uptime,
    )


def run():
    """Entry point for running the server."""
    import uvicorn

    current = get_settings()
    uvicorn.run(
        "backend.main:app",
        host=current.SERVER_HOST,
        port=current.SERVER_PORT,
        reload=current.DEBUG,
        log_level=current.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
