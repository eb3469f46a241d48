"""
Shared test setup.

Django is configured once per run from DATABASE_URL (PostgreSQL) when it is
set, otherwise against a throwaway SQLite file. A file rather than
":memory:" because the async ORM runs queries in a worker thread, and every
thread must see the same database.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from typing import Iterable
from urllib.parse import urlparse

import pytest

from stock_ledger.types import LogEntry, StockRecord


def _database_settings() -> dict:
    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        u = urlparse(database_url)
        if u.scheme not in {"postgres", "postgresql"}:
            raise pytest.UsageError(f"Unsupported DATABASE_URL scheme: {u.scheme!r}")
        return {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": (u.path or "").lstrip("/"),
            "USER": u.username or "",
            "PASSWORD": u.password or "",
            "HOST": u.hostname or "localhost",
            "PORT": str(u.port or 5432),
            "CONN_MAX_AGE": 0,
        }

    path = os.path.join(tempfile.mkdtemp(prefix="stock-ledger-"), "test.sqlite3")
    return {"ENGINE": "django.db.backends.sqlite3", "NAME": path}


def pytest_configure(config) -> None:
    from django.conf import settings

    if settings.configured:
        return

    settings.configure(
        SECRET_KEY="test",
        INSTALLED_APPS=["stock_ledger"],
        DATABASES={"default": _database_settings()},
        TIME_ZONE="UTC",
        USE_TZ=True,
        STOCK_LEDGER={},
    )

    import django

    django.setup()


@pytest.fixture(scope="session")
def _migrated() -> None:
    from django.core.management import call_command

    call_command("migrate", "stock_ledger", verbosity=0)


@pytest.fixture
def ledger_db(_migrated):
    """Empty stock tables before and after each database test."""
    from django.db import connection

    from stock_ledger.models import StockItem, StockLogEntry

    def _truncate() -> None:
        # Raw SQL: the log model refuses deletes on purpose.
        with connection.cursor() as cursor:
            cursor.execute(f"DELETE FROM {StockLogEntry._meta.db_table}")
            cursor.execute(f"DELETE FROM {StockItem._meta.db_table}")

    _truncate()
    yield
    _truncate()


class MemoryStore:
    """
    In-process stock store for ledger tests.

    Every method yields to the event loop before touching state, so
    concurrent coroutines interleave between a read and the following
    conditional write, the way requests do against a real database. The
    check-and-set itself runs without a suspension point, like a row update.
    """

    def __init__(self) -> None:
        self.rows: dict[str, list] = {}
        self.log: list[LogEntry] = []
        self.fail_reads = False
        self.fail_log = False
        self.fail_writes_for: set[str] = set()

    def add(self, product_id: str, quantity: int, name: str = "") -> None:
        self.rows[product_id] = [name or f"Product {product_id}", quantity]

    def quantity(self, product_id: str) -> int:
        return self.rows[product_id][1]

    def entries_for(self, product_id: str) -> list[LogEntry]:
        return [e for e in self.log if e.product_id == product_id]

    async def fetch(self, product_ids: Iterable[str]) -> dict[str, StockRecord]:
        await asyncio.sleep(0)
        if self.fail_reads:
            raise ConnectionError("store unreachable")
        return {
            pid: StockRecord(product_id=pid, name=self.rows[pid][0], quantity=self.rows[pid][1])
            for pid in product_ids
            if pid in self.rows
        }

    async def compare_and_set(self, product_id: str, expected: int, new: int) -> bool:
        await asyncio.sleep(0)
        if product_id in self.fail_writes_for:
            raise ConnectionError("store unreachable")
        row = self.rows.get(product_id)
        if row is None or row[1] != expected:
            return False
        row[1] = new
        return True

    async def set_quantity(self, product_id: str, new: int) -> bool:
        await asyncio.sleep(0)
        if product_id in self.fail_writes_for:
            raise ConnectionError("store unreachable")
        row = self.rows.get(product_id)
        if row is None:
            return False
        row[1] = new
        return True

    async def append_log(self, entry: LogEntry) -> None:
        await asyncio.sleep(0)
        if self.fail_log:
            raise ConnectionError("audit table unreachable")
        self.log.append(entry)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()
