"""FastAPI application factory for the segregation simulation service."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from schelling import __version__

from .router import router

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost",
    "http://localhost:8080",
    "http://localhost:5173",
)


def create_app(allowed_origins: Optional[Sequence[str]] = None) -> FastAPI:
    """Create the application; ``allowed_origins`` replaces the local CORS defaults."""

    origins = list(DEFAULT_ALLOWED_ORIGINS if allowed_origins is None else allowed_origins)
    logger.debug("Creating FastAPI application with CORS origins %s", origins)

    app = FastAPI(title="Schelling Segregation API", version=__version__)
    app.include_router(router)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    return app


# Expose a module-level application for ASGI servers like ``uvicorn``.
app = create_app()
