"""SQLite connection management for the scan store.

Schema changes are applied as an ordered list of migration scripts; the
``schema_version`` table records the last one applied.
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

_MIGRATIONS: tuple[str, ...] = (
    # 1: scans with denormalized summary columns for listing
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS scans (
        id TEXT PRIMARY KEY,
        instance_url TEXT NOT NULL DEFAULT '',
        org_id TEXT NOT NULL DEFAULT '',
        trace_id TEXT NOT NULL DEFAULT '',
        started_at REAL NOT NULL,
        duration REAL NOT NULL DEFAULT 0,
        objects INTEGER NOT NULL DEFAULT 0,
        records_approx INTEGER NOT NULL DEFAULT 0,
        flows INTEGER NOT NULL DEFAULT 0,
        triggers INTEGER NOT NULL DEFAULT 0,
        validation_rules INTEGER NOT NULL DEFAULT 0,
        high_findings INTEGER NOT NULL DEFAULT 0,
        medium_findings INTEGER NOT NULL DEFAULT 0,
        low_findings INTEGER NOT NULL DEFAULT 0,
        health_score INTEGER,
        structural_hash TEXT NOT NULL,
        document TEXT NOT NULL,
        created_at REAL NOT NULL
    );
    """,
    # 2: per-org history lookups
    """
    CREATE INDEX IF NOT EXISTS idx_scans_instance
        ON scans(instance_url, created_at);
    """,
)

SCHEMA_VERSION = len(_MIGRATIONS)


async def get_db(db_path: str | Path) -> aiosqlite.Connection:
    """Open (or create) the scan database at *db_path*, migrated to the latest schema."""
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    db = await aiosqlite.connect(str(path))
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")
    await _migrate(db)
    return db


async def _current_version(db: aiosqlite.Connection) -> int:
    cursor = await db.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    )
    if await cursor.fetchone() is None:
        return 0
    cursor = await db.execute("SELECT version FROM schema_version")
    row = await cursor.fetchone()
    return row[0] if row else 0


async def _migrate(db: aiosqlite.Connection) -> None:
    current = await _current_version(db)
    if current >= SCHEMA_VERSION:
        return

    for script in _MIGRATIONS[current:]:
        await db.executescript(script)

    if current == 0:
        await db.execute("DELETE FROM schema_version")
        await db.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
    else:
        await db.execute("UPDATE schema_version SET version = ?", (SCHEMA_VERSION,))
    await db.commit()
    logger.info("Scan database migrated from version %d to %d", current, SCHEMA_VERSION)
