"""
Routes package for the credential service.

Aggregates every APIRouter so the application factory can register them in
one call.
"""

from __future__ import annotations

from typing import Iterable

from fastapi import APIRouter, FastAPI

from authgate.routes.health import router as health_router
from authgate.routes.oauth import router as oauth_router
from authgate.routes.tokens import router as tokens_router

__all__ = [
    "health_router",
    "oauth_router",
    "tokens_router",
    "iter_routers",
    "register_all_routers",
]


def iter_routers() -> Iterable[APIRouter]:
    yield health_router
    yield oauth_router
    yield tokens_router


def register_all_routers(app: FastAPI) -> None:
    for router in iter_routers():
        app.include_router(router)
