"""
Health endpoints for shallow and deep readiness checks.
"""
from fastapi import APIRouter, HTTPException
from starlette.status import HTTP_200_OK, HTTP_503_SERVICE_UNAVAILABLE

from metavault import __version__
from metavault.cloud.registry import get_backend, list_backends
from metavault.db.session import check_db_ready

router = APIRouter(prefix="/admin", tags=["health"])


@router.get("/health", status_code=HTTP_200_OK)
async def health() -> dict:
    """Shallow health endpoint."""
    return {"status": "ok", "version": __version__}


@router.get("/health/deep", status_code=HTTP_200_OK)
async def health_deep() -> dict:
    """
    Deep health endpoint performing database connectivity and backend configuration checks.

    Checks:
    - Database connectivity
    - OAuth client configuration for every registered cloud backend
    """
    db_ready = await check_db_ready()
    if not db_ready:
        raise HTTPException(status_code=HTTP_503_SERVICE_UNAVAILABLE, detail="Database not ready")

    backend_checks = []
    for name in list_backends():
        backend = get_backend(name)
        configured = bool(backend.client_id and backend.client_secret and backend.redirect_uri)
        backend_checks.append({
            "backend": name,
            "configured": configured,
            "message": "OAuth client configured" if configured else "Missing client id, secret or redirect URI",
        })

    result = {
        "status": "ready" if all(c["configured"] for c in backend_checks) else "degraded",
        "database": {"healthy": db_ready, "message": "Database ready"},
        "cloud_backends": {
            "total": len(backend_checks),
            "configured": sum(1 for c in backend_checks if c["configured"]),
            "checks": backend_checks,
        },
    }
    if result["status"] == "degraded":
        result["warnings"] = [f"{c['backend']}: {c['message']}" for c in backend_checks if not c["configured"]]
    return result


@router.get("/ready", status_code=HTTP_200_OK)
async def ready() -> dict:
    """Alias for deep readiness to match deployment health checks."""
    ready = await check_db_ready()
    if not ready:
        raise HTTPException(status_code=HTTP_503_SERVICE_UNAVAILABLE, detail="Not ready")
    return {"status": "ready"}
