# metavault/main.py
"""
Main FastAPI app with monitoring integration, lock and cloud endpoints.
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware
from uuid import uuid4
import os
import traceback

from metavault import __version__
from metavault.config import settings
from metavault.core.exceptions import (
    AlreadyLocked,
    CredentialExpired,
    InvalidToken,
    NotBound,
    RemotePathNotFound,
    StorageFailure,
    TransportFailure,
    UnknownBackend,
    UserNotFound,
)
from metavault.db.session import DATABASE_URL, init_models
from metavault.monitoring.logger import log
from metavault.monitoring.audit import audit_event
from metavault.monitoring.errors import record_error
from metavault.monitoring.context import set_request_context
from metavault.api.admin.health import router as health_router
from metavault.api.locks import router as locks_router
from metavault.api.account import router as account_router
from metavault.api.cloud import router as cloud_router
from metavault.scheduler.scheduler import start_scheduler, shutdown_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    if DATABASE_URL.startswith("sqlite"):
        await init_models()
    if os.getenv("METAVAULT_DISABLE_SCHEDULER") != "1":
        await start_scheduler(app)
    yield
    await shutdown_scheduler(app)


app = FastAPI(title="Metavault Backend", version=__version__, lifespan=lifespan)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SessionMiddleware, secret_key=settings.SESSION_SECRET)

@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = str(uuid4())
    request.state.request_id = request_id
    set_request_context(request_id=request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


def _error(request: Request, status_code: int, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "request_id": getattr(request.state, "request_id", None)},
    )

@app.exception_handler(AlreadyLocked)
async def already_locked_handler(request: Request, exc: AlreadyLocked):
    return _error(request, 409, "Locked")

@app.exception_handler(InvalidToken)
async def invalid_token_handler(request: Request, exc: InvalidToken):
    return _error(request, 400, "Invalid Request")

@app.exception_handler(UserNotFound)
async def user_not_found_handler(request: Request, exc: UserNotFound):
    return _error(request, 404, "Not Found")

@app.exception_handler(NotBound)
async def not_bound_handler(request: Request, exc: NotBound):
    return _error(request, 404, "Not Found")

@app.exception_handler(UnknownBackend)
async def unknown_backend_handler(request: Request, exc: UnknownBackend):
    return _error(request, 404, "Not Found")

@app.exception_handler(RemotePathNotFound)
async def remote_path_handler(request: Request, exc: RemotePathNotFound):
    return _error(request, 404, "Not Found")

@app.exception_handler(CredentialExpired)
async def credential_expired_handler(request: Request, exc: CredentialExpired):
    log("WARNING", f"Cloud credential expired: {exc}", module="main", request_id=getattr(request.state, "request_id", None))
    return _error(request, 401, "Reauthorization Required")

@app.exception_handler(TransportFailure)
async def transport_failure_handler(request: Request, exc: TransportFailure):
    log("ERROR", f"Cloud transport failure: {exc}", module="main", request_id=getattr(request.state, "request_id", None), status=exc.status)
    return _error(request, 502, "Upstream Error")

@app.exception_handler(StorageFailure)
async def storage_failure_handler(request: Request, exc: StorageFailure):
    request_id = getattr(request.state, "request_id", None)
    await record_error(
        component="storage",
        function=request.url.path,
        message=f"Storage failure: {exc}",
        stacktrace=traceback.format_exc(),
        request_id=request_id,
        user_id=exc.user_id,
    )
    return _error(request, 500, "Database Error")

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, "request_id", None)
    tb = traceback.format_exc()
    log(
        "ERROR",
        f"Unhandled exception: {exc}",
        module="main",
        request_id=request_id
    )
    await audit_event(
        action="exception",
        user_id=None,
        payload={"error": str(exc), "traceback": tb},
        request_id=request_id
    )
    await record_error(
        component="main",
        function=request.url.path,
        message=f"Critical error: {exc}",
        stacktrace=tb,
        request_id=request_id,
        severity="CRITICAL",
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "request_id": request_id,
            "detail": "An unexpected error occurred."
        }
    )

# Mount routers
app.include_router(health_router)
app.include_router(locks_router, prefix="/api")
app.include_router(account_router, prefix="/api")
app.include_router(cloud_router, prefix="/api")

# Logging initialization
log("INFO", "Metavault Backend started", module="main")
