"""Tests for the Postgres commit store.

Tests marked ``postgres`` need a disposable database; point
``COMMIT_ROLLUP_TEST_DSN`` at it to run them.
"""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone

import pytest

from commit_rollup.config import DatabaseSettings
from commit_rollup.db import SCHEMA_PATH, CommitStore, _load_sql_statements, dedupe_commits
from commit_rollup.errors import StoreError
from commit_rollup.models import Commit, DayCount

TEST_DSN = os.environ.get("COMMIT_ROLLUP_TEST_DSN")
postgres = pytest.mark.skipif(not TEST_DSN, reason="COMMIT_ROLLUP_TEST_DSN is not set")


def _commit(sha: str, day: int, repo: str = "octocat/A", hour: int = 12) -> Commit:
    return Commit(hash=sha, author_date=datetime(2024, 1, day, hour, tzinfo=timezone.utc), repo_full_name=repo)


def test_dedupe_commits_keeps_first_occurrence():
    commits = [_commit("h1", 1, "octocat/A"), _commit("h2", 2), _commit("h1", 1, "octocat/B")]

    unique = dedupe_commits(commits)

    assert [commit.hash for commit in unique] == ["h1", "h2"]
    assert unique[0].repo_full_name == "octocat/A"


def test_schema_statements_are_idempotent():
    statements = _load_sql_statements(SCHEMA_PATH)

    assert len(statements) == 2
    assert all("IF NOT EXISTS" in statement for statement in statements)
    assert "hash TEXT PRIMARY KEY" in statements[0]


def test_persist_requires_connection():
    store = CommitStore(DatabaseSettings())

    with pytest.raises(StoreError):
        asyncio.run(store.persist([_commit("h1", 1)]))


def test_persist_empty_batch_is_a_no_op():
    store = CommitStore(DatabaseSettings())

    assert asyncio.run(store.persist([])) == 0


class _FakeConnection:
    def __init__(self, fail_on_call: int | None = None) -> None:
        self.fetch_calls: list[tuple] = []
        self.transaction_errors: list[BaseException | None] = []
        self._fail_on_call = fail_on_call

    @asynccontextmanager
    async def transaction(self):
        try:
            yield
        except BaseException as exc:
            self.transaction_errors.append(exc)
            raise
        else:
            self.transaction_errors.append(None)

    async def fetch(self, query: str, *args):
        self.fetch_calls.append(args)
        if self._fail_on_call is not None and len(self.fetch_calls) == self._fail_on_call:
            raise OSError("connection reset by peer")
        return [{"hash": value} for value in args[0]]


class _FakePool:
    def __init__(self, connection: _FakeConnection) -> None:
        self._connection = connection

    @asynccontextmanager
    async def acquire(self):
        yield self._connection


def test_persist_chunks_inside_one_transaction():
    connection = _FakeConnection()
    store = CommitStore(DatabaseSettings(batch_size=2))
    store._pool = _FakePool(connection)

    inserted = asyncio.run(store.persist([_commit("h1", 1), _commit("h2", 2), _commit("h1", 1), _commit("h3", 3)]))

    assert inserted == 3
    assert [call[0] for call in connection.fetch_calls] == [["h1", "h2"], ["h3"]]
    assert connection.transaction_errors == [None]


def test_persist_failure_rolls_back_and_raises_store_error():
    connection = _FakeConnection(fail_on_call=2)
    store = CommitStore(DatabaseSettings(batch_size=1))
    store._pool = _FakePool(connection)

    with pytest.raises(StoreError):
        asyncio.run(store.persist([_commit("h1", 1), _commit("h2", 2)]))

    assert len(connection.transaction_errors) == 1
    assert isinstance(connection.transaction_errors[0], OSError)


def _with_store(scenario, **settings):
    async def runner():
        async with CommitStore(DatabaseSettings(dsn=TEST_DSN, **settings)) as store:
            await store.ensure_schema()
            await store.ensure_schema()
            async with store._ensure_pool().acquire() as conn:
                await conn.execute("TRUNCATE commit_data")
            return await scenario(store)

    return asyncio.run(runner())


@postgres
def test_duplicate_hashes_are_stored_once_and_counted_once():
    async def scenario(store: CommitStore):
        first = await store.persist([_commit("h1", 1, "octocat/A"), _commit("h2", 2, "octocat/A")])
        second = await store.persist([_commit("h1", 1, "octocat/B"), _commit("h3", 2, "octocat/B")])
        return first, second, await store.count(), await store.rollup(date(2023, 12, 31))

    first, second, total, rollup = _with_store(scenario)

    assert (first, second, total) == (2, 1, 3)
    assert sorted(rollup, key=lambda count: count.day) == [
        DayCount(day=date(2024, 1, 1), commit_count=1),
        DayCount(day=date(2024, 1, 2), commit_count=2),
    ]


@postgres
def test_persist_is_idempotent():
    batch = [_commit("h1", 1), _commit("h2", 2), _commit("h3", 2)]

    async def scenario(store: CommitStore):
        await store.persist(batch)
        once = sorted(await store.rollup(date(2023, 1, 1)), key=lambda count: count.day)
        again = await store.persist(batch)
        twice = sorted(await store.rollup(date(2023, 1, 1)), key=lambda count: count.day)
        return once, again, twice, await store.count()

    once, again, twice, total = _with_store(scenario)

    assert again == 0
    assert once == twice
    assert total == 3


@postgres
def test_first_write_wins():
    async def scenario(store: CommitStore):
        await store.persist([_commit("h1", 1, "octocat/A")])
        await store.persist([_commit("h1", 5, "octocat/B")])
        async with store._ensure_pool().acquire() as conn:
            return await conn.fetchrow("SELECT date, repo_name FROM commit_data WHERE hash = 'h1'")

    row = _with_store(scenario)

    assert row["repo_name"] == "octocat/A"
    assert row["date"] == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)


@postgres
def test_rollup_excludes_cutoff_day_and_earlier():
    async def scenario(store: CommitStore):
        await store.persist([_commit("h1", 1, hour=23), _commit("h2", 2, hour=0), _commit("h3", 2, hour=23)])
        return await store.rollup(date(2024, 1, 1)), await store.rollup(date(2024, 1, 2))

    after_first, after_last = _with_store(scenario)

    assert after_first == [DayCount(day=date(2024, 1, 2), commit_count=2)]
    assert after_last == []


@postgres
def test_failed_batch_leaves_no_rows():
    async def scenario(store: CommitStore):
        with pytest.raises(StoreError):
            # NUL bytes are rejected by Postgres text columns.
            await store.persist([_commit("h1", 1), _commit("h2\x00", 2)])
        return await store.count()

    assert _with_store(scenario, batch_size=1) == 0
