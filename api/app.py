from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import get_settings
from api.routes.cache import router as cache_router
from api.routes.generate import router as generate_router
from stream_bridge.generation.models import isoformat_now


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def create_app() -> FastAPI:
    setup_logging(get_settings().log_level)
    app = FastAPI(title="Stream Bridge API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(generate_router)
    app.include_router(cache_router)

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok", "timestamp": isoformat_now(), "service": "Stream Bridge API"}

    return app


app = create_app()
