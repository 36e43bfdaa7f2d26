from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from jobboard.api.billing_routes import router as billing_router
from jobboard.api.routes import router as api_router
from jobboard.api.zoho_routes import router as zoho_router
from jobboard.config import get_settings
from jobboard.db.init import init_database
from jobboard.logging_config import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging()

    app = FastAPI(title=settings.app_name)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Last data-store probe; refreshed by /api/health/db.
    app.state.connection_status = None

    @app.on_event("startup")
    def _startup() -> None:
        init_database()

    @app.get("/health")
    def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    app.include_router(api_router)
    app.include_router(billing_router)
    app.include_router(zoho_router)
    return app
