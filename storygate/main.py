"""
Main FastAPI application for the Storygate monetization API.
Serves health, monetization, admin and metrics.
"""
import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storygate.api.errors import storage_error_handler
from storygate.api.routes import admin, health, monetization
from storygate.core.config import settings
from storygate.core.logging import configure_logging
from storygate.db.session import init_db
from storygate.services.ad_sessions.service import InMemoryAdSessionTracker
from storygate.services.container import get_services
from storygate.services.errors import StorageError
from storygate.services.maintenance import start_ad_session_sweeper
from storygate.utils.metrics import router as metrics_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    services = get_services()
    sweeper = None
    # Redis sessions are swept by Celery beat; in-process ones only exist here
    if isinstance(services.tracker, InMemoryAdSessionTracker):
        sweeper = start_ad_session_sweeper(services.tracker, settings.ad_session_sweep_interval_seconds)
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper


app = FastAPI(
    title="Storygate API",
    description="Entitlements and monetization gating for interactive stories",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if not origins:
    origins = ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(StorageError, storage_error_handler)

# Routers
app.include_router(health.router, tags=["health"])
app.include_router(monetization.router)
app.include_router(admin.router)
app.include_router(metrics_router)
