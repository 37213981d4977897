from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from feedhub.core.settings import S
from feedhub.core.tables import init_tables
from feedhub.metrics import metrics_endpoint, metrics_middleware, set_app_info
from feedhub.routers.collaborators import router as collaborators_router
from feedhub.routers.comments import router as comments_router
from feedhub.routers.feeds import router as feeds_router
from feedhub.routers.likes import router as likes_router
from feedhub.routers.media import router as media_router

logging.basicConfig(
    level=getattr(logging, S.log_level, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title="Feedhub API", version="0.1.0")
    init_tables(S)
    logger.info("tables ready (backend=%s)", S.store_backend)

    origins = [o.strip() for o in S.cors_allow_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if S.metrics_enabled:
        app.middleware("http")(metrics_middleware)
        set_app_info(app.title, app.version)
        app.get("/metrics")(metrics_endpoint)

    @app.get("/healthz")
    def healthz():
        return {"ok": True}

    app.include_router(feeds_router)
    app.include_router(collaborators_router)
    app.include_router(comments_router)
    app.include_router(likes_router)
    app.include_router(media_router)

    return app


app = create_app()
