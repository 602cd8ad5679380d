"""FastAPI application factory for the scan history API."""

from __future__ import annotations

from fastapi import FastAPI

from migready import __version__
from migready.config import MigReadyConfig
from migready.storage.db import get_db
from migready.storage.repos import ScanStore, SqliteScanStore


async def create_app(
    config: MigReadyConfig | None = None,
    store: ScanStore | None = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Without an explicit ``store`` the SQLite database under the data
    directory is opened.
    """
    config = config or MigReadyConfig.load()

    app = FastAPI(
        title="MigReady",
        version=__version__,
        docs_url="/api/docs",
    )

    app.state.config = config
    app.state.db = None
    if store is None:
        app.state.db = await get_db(config.db_path)
        store = SqliteScanStore(app.state.db)
    app.state.store = store

    from migready.web.api.scans import router as scans_router

    app.include_router(scans_router, prefix="/api")

    @app.on_event("shutdown")
    async def shutdown() -> None:
        if app.state.db is not None:
            await app.state.db.close()

    return app
