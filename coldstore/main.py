from __future__ import annotations

import asyncio
import contextlib

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coldstore.core.config import Settings, get_settings
from coldstore.core.http_errors import register_exception_handlers
from coldstore.core.logging import setup_logging
from coldstore.db.base import Base
from coldstore.db.session import create_db_engine, make_session_factory

# Register models
from coldstore.db import models  # noqa: F401

from coldstore.services.admin.events_api import router as events_admin_router
from coldstore.services.alerts.api import router as alerts_router
from coldstore.services.catalog.api import router as catalog_router
from coldstore.services.orders.api import router as orders_router
from coldstore.services.stock.api import router as stock_router
from coldstore.services.storage.api import router as storage_router


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    engine = create_db_engine(settings)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        # Dev-friendly schema creation (alembic handles real upgrades)
        Base.metadata.create_all(bind=engine)

        if settings.dispatcher_enabled:
            from coldstore.events.dispatcher import run_dispatcher_forever

            app.state.dispatcher_task = asyncio.create_task(
                run_dispatcher_forever(app.state.session_factory,
                                       poll_interval_seconds=settings.dispatcher_poll_seconds)
            )
        try:
            yield
        finally:
            task = app.state.dispatcher_task
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            engine.dispose()

    app = FastAPI(title="ColdStore WMS", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.state.dispatcher_task = None

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_origins),
            allow_methods=["*"],
            allow_headers=["*"],
        )
    register_exception_handlers(app)

    app.include_router(catalog_router)
    app.include_router(storage_router)
    app.include_router(stock_router)
    app.include_router(orders_router)
    app.include_router(alerts_router)
    app.include_router(events_admin_router)

    @app.get("/health")
    def health():
        return {"ok": True}

    return app


def run() -> None:
    import uvicorn

    uvicorn.run("coldstore.main:create_app", factory=True, host="0.0.0.0", port=8000)
