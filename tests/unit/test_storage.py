"""Tests for the scan stores."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from migready.storage.repos import InMemoryScanStore, SqliteScanStore


def run_async(coro):
    """Helper to run async functions in sync tests."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path: Path):
    from migready.storage.db import get_db

    conn = run_async(get_db(db_path))
    yield conn
    run_async(conn.close())


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    if request.param == "memory":
        return InMemoryScanStore()
    return SqliteScanStore(request.getfixturevalue("db"))


class TestScanStore:
    def test_save_and_get(self, store, scan_result):
        scan_id = run_async(store.save(scan_result))
        doc = run_async(store.get(scan_id))
        assert doc is not None
        assert doc["id"] == scan_id
        assert doc["trace_id"] == "a1b2c3d4e5f6"
        assert doc["structural_hash"] == scan_result.summary.structural_hash()
        assert doc["snapshot"]["objects"][0]["name"] == "Invoice__c"
        assert doc["snapshot"]["automation"]["validation_rules"]["shape"] == "count_only"
        assert {f["id"] for f in doc["findings"]} == {
            "LARGE_OBJECT_Invoice__c",
            "TRIGGER_BLOCKER_Invoice__c",
        }

    def test_get_missing(self, store):
        assert run_async(store.get("nonexistent")) is None

    def test_list(self, store, scan_result):
        first = run_async(store.save(scan_result))
        second = run_async(store.save(scan_result))
        rows = run_async(store.list())
        assert {row["id"] for row in rows} == {first, second}
        row = rows[0]
        assert row["instance_url"] == "https://acme.my.salesforce.com"
        assert row["objects"] == 1
        assert row["records_approx"] == 250000
        assert row["high_findings"] == 1
        assert row["medium_findings"] == 1
        assert row["health_score"] == scan_result.health.overall_score

    def test_list_pagination(self, store, scan_result):
        for _ in range(3):
            run_async(store.save(scan_result))
        assert len(run_async(store.list(limit=2))) == 2
        assert len(run_async(store.list(limit=2, offset=2))) == 1


class TestMigrations:
    def test_schema_version_recorded(self, db):
        from migready.storage.db import SCHEMA_VERSION

        cursor = run_async(db.execute("SELECT version FROM schema_version"))
        row = run_async(cursor.fetchone())
        assert row[0] == SCHEMA_VERSION

    def test_reopen_existing_database(self, db_path, scan_result):
        from migready.storage.db import get_db

        conn = run_async(get_db(db_path))
        scan_id = run_async(SqliteScanStore(conn).save(scan_result))
        run_async(conn.close())

        conn = run_async(get_db(db_path))
        try:
            assert run_async(SqliteScanStore(conn).get(scan_id)) is not None
        finally:
            run_async(conn.close())
