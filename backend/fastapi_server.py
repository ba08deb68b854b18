"""
FastAPI Server for the FlyFF Item Resource Editor
- Loads, edits and saves Spec_Item.txt, propItem.txt.txt, defineItem.h and mdlDyna.inc
- One shared resource session per process
"""

import os
import sys
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
import uvicorn

# Add the backend directory to Python path for imports
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from fastapi_core.exceptions import ResourceEditorError
from config.logging_config import configure_logging
from fastapi_core.session_registry import get_resource_session
from loguru import logger

APP_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logging"""
    logger.info("FastAPI server starting up...")
    yield
    logger.info("FastAPI server shutting down...")


app = FastAPI(
    title="FlyFF Item Resource Editor API",
    description="Load, edit and save FlyFF item resource files",
    version=APP_VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan
)

# ============================================================================
# MIDDLEWARE
# ============================================================================

# Reads are logged at DEBUG; anything that can change the loaded resources at INFO
READ_METHODS = ("GET", "HEAD", "OPTIONS")


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Tag each request with a short id and log it with its duration"""

    async def dispatch(self, request: Request, call_next):
        request_id = uuid.uuid4().hex[:8]
        request.state.request_id = request_id

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        level = "DEBUG" if request.method in READ_METHODS else "INFO"
        logger.log(level, f"[{request_id}] {request.method} {request.url.path} -> "
                          f"{response.status_code} in {elapsed_ms:.0f} ms")

        response.headers["X-Request-ID"] = request_id
        return response


app.add_middleware(RequestLogMiddleware)

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.environ.get(
        "ALLOWED_ORIGINS",
        "http://localhost:3000,http://localhost:5173,http://localhost:8080"
    ).split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# GLOBAL EXCEPTION HANDLERS
# ============================================================================

def _request_id(request: Request) -> str:
    return getattr(request.state, 'request_id', 'unknown')


@app.exception_handler(ResourceEditorError)
def resource_editor_error_handler(request: Request, exc: ResourceEditorError):
    """Editor errors carry their own status code and error code"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"[{_request_id(request)}] {exc.error_code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed edit, load or save bodies"""
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in exc.errors()
    ]
    fields = ', '.join('.'.join(str(part) for part in e["loc"]) for e in errors)
    logger.warning(f"[{_request_id(request)}] Invalid body for {request.url.path}: {fields}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "validation_error", "detail": "Invalid request data", "errors": errors}
    )


@app.exception_handler(StarletteHTTPException)
def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"[{_request_id(request)}] HTTP {exc.status_code} on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "http_error", "detail": exc.detail}
    )


@app.exception_handler(Exception)
def global_exception_handler(request: Request, exc: Exception):
    """Anything else is a bug; the loaded resources are left as they were"""
    request_id = _request_id(request)
    logger.opt(exception=exc).error(f"[{request_id}] Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_server_error",
            "detail": "An unexpected error occurred",
            "request_id": request_id
        }
    )

# System endpoints
@app.get("/api/health/")
def health_check():
    return {"status": "healthy", "service": "flyff-item-editor"}


@app.get("/api/info/")
def app_info():
    """Version plus where resources are read from and saved to"""
    session = get_resource_session()
    settings = session.settings
    return {
        "name": "FlyFF Item Resource Editor",
        "version": APP_VERSION,
        "resources_loaded": session.is_loaded,
        "resource_folders": [str(p) for p in settings.resource_candidates],
        "save_folders": [str(p) for p in settings.save_candidates],
        "save_encoding": settings.save_encoding,
    }


from fastapi_routers.resources import router as resources_router

app.include_router(resources_router, prefix="/api", tags=["resources"])


def main():
    """Main entry point for FastAPI server"""
    configure_logging()
    logger.info("Starting FlyFF Item Resource Editor backend...")

    port = int(os.environ.get("PORT", "8000"))
    host = os.environ.get("HOST", "127.0.0.1")
    debug = os.environ.get("DEBUG", "False").lower() == "true"

    logger.info(f"Server configuration: {host}:{port} (debug={debug})")

    config = uvicorn.Config(
        app=app,
        host=host,
        port=port,
        log_level="info" if debug else "warning",
        reload=False
    )
    server = uvicorn.Server(config)

    try:
        server.run()
    except Exception as e:
        logger.error(f"Failed to start FastAPI server: {e}")
        raise


if __name__ == "__main__":
    main()
