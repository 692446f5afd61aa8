import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes.citations import router as citations_router
from api.routes.database import router as database_router
from api.routes.notes import router as notes_router
from api.routes.papers import router as papers_router
from paperhub.database.errors import RepositoryError
from paperhub.database.factory import RepositoryFactory
from paperhub.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def create_app(factory: Optional[RepositoryFactory] = None) -> FastAPI:
    """
    Build the API application.

    A pre-built factory can be passed in (tests); otherwise one is created
    from the global Config. The factory is initialized on startup and
    cleaned up on shutdown.
    """
    factory = factory or RepositoryFactory()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(factory.settings.logging)
        if not factory.is_initialized():
            factory.initialize()
        yield
        factory.cleanup()

    app = FastAPI(title="PaperHub API", lifespan=lifespan)
    app.state.factory = factory

    # Dev: allow every origin; otherwise only the local frontend
    is_dev = os.getenv("ENV", "development") == "development"
    cors_origins = (
        ["*"]
        if is_dev
        else [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=not is_dev,  # credentials cannot be combined with "*"
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RepositoryError)
    async def repository_error_handler(request: Request, exc: RepositoryError):
        if exc.status_code >= 500:
            logger.error(f"❌ {request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "error": {"code": exc.code, "message": exc.message}},
        )

    app.include_router(papers_router)
    app.include_router(citations_router)
    app.include_router(notes_router)
    app.include_router(database_router)

    @app.get("/health")
    def health_check():
        return {"status": "ok", **factory.health()}

    return app


app = create_app()
