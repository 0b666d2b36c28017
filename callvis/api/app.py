"""FastAPI application factory and lifespan management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from callvis import __version__
from callvis.api.routes import router
from callvis.config import settings
from callvis.core.service import ControlService
from callvis.logging import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler — runs setup on startup.

    Args:
        app: The FastAPI application instance.
    """
    setup_logging(settings.log_level, settings.log_json)
    yield


def create_app(service: ControlService, viewer_url: str | None = None) -> FastAPI:
    """Build and return the configured FastAPI application.

    Args:
        service: Control service holding the analysed graph.
        viewer_url: Where render triggers redirect to; defaults to
            :pyattr:`callvis.config.Settings.viewer_url`.

    Returns:
        A fully wired :class:`FastAPI` instance.
    """
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        description=(
            "callvis control service — exchange pipeline options, trigger "
            "re-renders of the call graph and fetch the latest artifact."
        ),
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.state.service = service
    app.state.viewer_url = viewer_url or settings.viewer_url
    app.include_router(router, tags=["Call graph"])
    return app
