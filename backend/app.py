import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.application import (
    WorkspaceService,
    build_workspace_service,
    configure_workspace_service,
    get_workspace_service,
)
from backend.core.config import GenerationSettings, load_settings
from backend.routes import chat, upload, workspace

log = logging.getLogger(__name__)


def create_app(
    settings: GenerationSettings | None = None,
    *,
    service: WorkspaceService | None = None,
) -> FastAPI:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)s  %(message)s")

    if service is None:
        service = build_workspace_service(settings or load_settings())
    configure_workspace_service(service)

    if not service.health()["credential"]:
        log.warning("no API key configured; every generation request will be refused")

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        await get_workspace_service().join()

    app = FastAPI(title="DentAssist Generation API", version="0.1.0", lifespan=lifespan)

    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    if not origins:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(workspace.router, prefix="/api")
    app.include_router(upload.router, prefix="/api")
    app.include_router(chat.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "DentAssist Generation API",
                "docs": "/docs",
                "health": "/api/health",
            }
        )

    @app.get("/api/health")
    async def health(language: str = "ar") -> dict:
        return get_workspace_service().health(language)

    return app


app = create_app()
