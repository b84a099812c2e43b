from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from app.api import router
from logging_config import configure_logging
from services.monitor import build_default_monitor
from services.notifier import ALERT_THRESHOLD_CM

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    monitor = build_default_monitor()
    status = await run_in_threadpool(monitor.check_notifier)
    if status.ok:
        logger.info("Email server is ready to send messages")
    else:
        logger.error(
            "Email configuration error: %s", status.message,
            extra={"recipient": status.config.get("to")},
        )
    logger.info(
        "Email alerts configured for readings below %d cm",
        ALERT_THRESHOLD_CM,
        extra={"recipient": status.config.get("to")},
    )
    try:
        yield
    finally:
        monitor.shutdown()
        build_default_monitor.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Smart Drainage Monitor",
        description="Water level ingestion service with rate-limited email alerts.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app

app = create_app()
