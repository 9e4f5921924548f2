"""pharmasos FastAPI application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from pharmasos.api import admin, health, notifications, pharmacy, sos
from pharmasos.core.config import settings
from pharmasos.db.session import init_db

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("%s started, schema ready", settings.app_name)
    yield


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(sos.router)
app.include_router(pharmacy.router)
app.include_router(notifications.router)
app.include_router(admin.router)
