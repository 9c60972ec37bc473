"""Entry point for the Ahoy voice call orchestration service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.push_routes import router as push_router
from api.routes import router as api_router
from calls.factory import build_orchestrator
from config.settings import get_settings
from db.base import engine, init_db
from db.repository import SqlKeyValueStore
from integrations.events_webhook import CallEventsWebhook

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    orchestrator = build_orchestrator(SqlKeyValueStore(), settings=settings)
    app.state.orchestrator = orchestrator

    webhook: CallEventsWebhook | None = None
    if settings.call_events_webhook_url:
        webhook = CallEventsWebhook()
        webhook.attach(orchestrator.events)

    LOGGER.info("Call orchestrator ready (transport=%s)", settings.telephony_provider)
    yield

    if webhook is not None:
        webhook.detach()
    app.state.orchestrator = None
    await engine.dispose()


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Ahoy Voice",
    description="Call session orchestration between push delivery, telephony and system call UI.",
    lifespan=lifespan,
)
app.include_router(api_router, prefix="/api")
app.include_router(push_router, prefix="/api")
