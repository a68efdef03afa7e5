from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST

from common.config import ConfigError, Settings, get_settings

from .service import CollectorService

logger = logging.getLogger(__name__)


def create_app(service: CollectorService) -> FastAPI:
    """HTTP surface: Prometheus scrape endpoint plus health checks.

    The lifespan starts the collector and stops it on shutdown (SIGINT/SIGTERM
    are handled by uvicorn).
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        service.start()
        try:
            yield
        finally:
            service.stop()

    app = FastAPI(title="Qingping Collector", version="0.1.0", lifespan=lifespan)
    app.state.service = service

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/mqtt/health")
    def mqtt_health():
        return service.health_check()

    @app.get("/metrics")
    def metrics():
        return Response(content=service.metrics.exposition(), media_type=CONTENT_TYPE_LATEST)

    return app


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )


def run(settings: Optional[Settings] = None) -> None:
    configure_logging()
    if settings is None:
        try:
            settings = get_settings()
        except ConfigError as e:
            logger.error("%s", e)
            sys.exit(1)
    logging.getLogger().setLevel(settings.log_level)

    app = create_app(CollectorService(settings))
    logger.info("Starting Prometheus metrics server on :%d", settings.metrics_port)
    uvicorn.run(app, host="0.0.0.0", port=settings.metrics_port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
