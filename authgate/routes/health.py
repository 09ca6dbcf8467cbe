"""
Health endpoint reporting both backing stores
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(tags=["system"])


@router.get("/health")
async def health(request: Request):
    database = await request.app.state.db_manager.health()
    store_ok = await request.app.state.session_store.ping()

    healthy = database == "healthy" and store_ok
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "degraded",
            "database": database,
            "session_store": "healthy" if store_ok else "unhealthy",
        },
    )
