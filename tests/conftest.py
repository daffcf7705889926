from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Set

import pytest

from ipstatus.config import Settings


# ------------------------------
# Fakes for asyncpg pool behavior
# ------------------------------

class FakeDbError(Exception):
    pass


class FakeStore:
    """In-memory ip_statuses table. Writes land only on commit."""

    def __init__(self):
        self.rows: Dict[str, str] = {}
        self.history: Dict[str, List[str]] = defaultdict(list)
        self.statements = 0
        self.bulk_statements = 0
        self.single_statements = 0
        self.transactions = 0
        self.commits = 0
        self.rollbacks = 0
        # 1-based statement / transaction numbers that blow up
        self.fail_bulk_at: Set[int] = set()
        self.fail_single_at: Set[int] = set()
        self.fail_commit_at: Set[int] = set()
        self.fail_acquire = False
        self.delay_s = 0.0

    def apply(self, writes):
        for ip, status in writes:
            self.rows[ip] = status
            self.history[ip].append(status)


class FakeTransaction:
    def __init__(self, conn: "FakeConnection"):
        self.conn = conn

    async def __aenter__(self):
        self.conn.staged = []
        self.conn.store.transactions += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        staged, self.conn.staged = self.conn.staged, None
        store = self.conn.store
        if exc_type is not None:
            store.rollbacks += 1
            return False
        if store.transactions in store.fail_commit_at:
            store.rollbacks += 1
            raise FakeDbError("commit failed")
        store.commits += 1
        store.apply(staged)
        return False


class FakeConnection:
    def __init__(self, store: FakeStore):
        self.store = store
        self.staged: Optional[list] = None

    def transaction(self):
        return FakeTransaction(self)

    async def execute(self, sql: str, *args):
        await asyncio.sleep(self.store.delay_s)
        store = self.store
        store.statements += 1

        if "unnest" in sql:
            store.bulk_statements += 1
            ips, statuses = args
            if len(set(ips)) != len(ips):
                raise FakeDbError("ON CONFLICT DO UPDATE command cannot affect row a second time")
            writes = list(zip(ips, statuses))
            if store.bulk_statements in store.fail_bulk_at:
                # half-applied inside the transaction, then fail
                if self.staged is not None:
                    self.staged.extend(writes[: len(writes) // 2])
                raise FakeDbError(f"bulk statement {store.bulk_statements} failed")
        elif "VALUES ($1, $2)" in sql:
            store.single_statements += 1
            if store.single_statements in store.fail_single_at:
                raise FakeDbError(f"statement {store.single_statements} failed")
            writes = [(args[0], args[1])]
        else:
            return "CREATE TABLE"

        if self.staged is not None:
            self.staged.extend(writes)
        else:
            store.apply(writes)
        return "INSERT 0 %d" % len(writes)

    async def fetchval(self, sql: str, *args):
        await asyncio.sleep(0)
        if "DISTINCT" in sql:
            return len(set(self.store.rows))
        return len(self.store.rows)


class _Acquire:
    def __init__(self, store: FakeStore):
        self.store = store

    async def __aenter__(self):
        if self.store.fail_acquire:
            raise FakeDbError("pool exhausted")
        return FakeConnection(self.store)

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakePool:
    def __init__(self, store: Optional[FakeStore] = None):
        self.store = store or FakeStore()
        self.closed = False

    def acquire(self):
        return _Acquire(self.store)

    async def close(self):
        self.closed = True


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def pool(store) -> FakePool:
    return FakePool(store)


@pytest.fixture
def log() -> logging.Logger:
    return logging.getLogger("ipstatus.tests")


@pytest.fixture
def cfg() -> Settings:
    return Settings(
        base_network="10.0.0.0/24",
        key_count=50,
        chunk_size=7,
        concurrent_workers=2,
        metrics_every_s=0,
        seed=1234,
        create_schema=True,
        verify=True,
        wait_for_input=False,
    )
