"""Application factory and top-level wiring for the toolcrib lending service.

This module brings together configuration, the database handle, middleware,
API routers and error handling. ``create_app`` is what both the production
entry point (``toolcrib.main``) and the test-suite call, so anyone reading it
sees in one place *what* runs, *when* it is initialised and *how* the parts
are connected.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import AppSettings, settings as default_settings
from .core.errors import register_exception_handlers
from .db.session import Database
from .middlewares import RequestIdMiddleware, SecurityHeadersMiddleware

logger = logging.getLogger("toolcrib")


def _bootstrap_admin(database: Database, config: AppSettings) -> None:
    from .crud.users import ensure_bootstrap_admin

    db = database.session()
    try:
        ensure_bootstrap_admin(
            db,
            document_number=config.BOOTSTRAP_ADMIN_DOCUMENT or "",
            password=config.BOOTSTRAP_ADMIN_PASSWORD or "",
            full_name=config.BOOTSTRAP_ADMIN_NAME,
            email=config.BOOTSTRAP_ADMIN_EMAIL,
        )
    finally:
        db.close()


def create_app(config: AppSettings | None = None, database: Database | None = None) -> FastAPI:
    config = config or default_settings
    # The handle is created here and closed by the lifespan below; nothing
    # else in the process holds a connection pool.
    database = database or Database.from_settings(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.create_all()
        if config.bootstrap_enabled:
            _bootstrap_admin(database, config)
        logger.info("app.started", extra={"extra_data": {"env": config.APP_ENV}})
        try:
            yield
        finally:
            database.dispose()
            logger.info("app.stopped")

    app = FastAPI(title=config.APP_NAME, lifespan=lifespan)
    app.state.database = database
    app.state.settings = config

    # ---------- Middleware ----------
    # Starlette runs the last-added middleware first, so the request id is
    # assigned before anything else logs.
    app.add_middleware(SecurityHeadersMiddleware)
    if config.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.add_middleware(RequestIdMiddleware)

    # ---------- Routers ----------
    from .routers import api_auth, api_loans, api_products, api_reports, api_tools, api_users

    app.include_router(api_auth.router)
    app.include_router(api_users.router)
    app.include_router(api_tools.router)
    app.include_router(api_loans.router)
    app.include_router(api_products.router)
    app.include_router(api_reports.router)

    # ---------- Exception handling ----------
    register_exception_handlers(app)

    @app.get("/health", tags=["meta"])
    def health() -> dict[str, bool]:
        return {"ok": True}

    return app


__all__ = ["create_app"]
