"""Persistence layer for synced commits."""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Iterable, Sequence

import asyncpg

from .config import DatabaseSettings
from .errors import StoreError
from .models import Commit, DayCount

LOGGER = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "sql" / "schema.sql"

INSERT_SQL = """
    INSERT INTO commit_data (hash, date, repo_name)
    SELECT * FROM unnest($1::text[], $2::timestamptz[], $3::text[])
    ON CONFLICT (hash) DO NOTHING
    RETURNING hash
"""

ROLLUP_SQL = """
    SELECT
        (date AT TIME ZONE 'UTC')::date AS day,
        COUNT(DISTINCT hash) AS commit_count
    FROM commit_data
    WHERE (date AT TIME ZONE 'UTC')::date > $1
    GROUP BY day
"""

_STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class CommitStore:
    """Async helper for writing commits into Postgres and rolling them up per day."""

    def __init__(self, settings: DatabaseSettings) -> None:
        self._settings = settings
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        if self._pool is not None:
            return
        try:
            self._pool = await asyncpg.create_pool(
                dsn=self._settings.dsn,
                init=self._init_connection,
                command_timeout=self._settings.statement_timeout,
            )
        except _STORE_ERRORS as exc:
            raise StoreError(f"Could not connect to the database: {exc}") from exc

    async def close(self) -> None:
        if self._pool:
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> "CommitStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()

    async def ensure_schema(self) -> None:
        """Create the commit table if it does not exist yet."""

        pool = self._ensure_pool()
        statements = _load_sql_statements(SCHEMA_PATH)
        try:
            async with pool.acquire() as conn:
                for statement in statements:
                    await conn.execute(statement)
        except _STORE_ERRORS as exc:
            raise StoreError(f"Schema creation failed: {exc}") from exc

    async def persist(self, commits: Sequence[Commit]) -> int:
        """Insert the batch in one transaction and return the number of new rows.

        Rows whose hash is already stored are left untouched. If any statement
        fails the whole batch is rolled back.
        """

        unique = dedupe_commits(commits)
        if not unique:
            return 0
        pool = self._ensure_pool()
        inserted = 0
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    for chunk in _chunks(unique, self._settings.batch_size):
                        rows = await conn.fetch(
                            INSERT_SQL,
                            [commit.hash for commit in chunk],
                            [commit.author_date for commit in chunk],
                            [commit.repo_full_name for commit in chunk],
                        )
                        inserted += len(rows)
        except _STORE_ERRORS as exc:
            raise StoreError(f"Persisting {len(unique)} commits failed: {exc}") from exc
        LOGGER.info("Persisted %s new commits (%s already stored)", inserted, len(unique) - inserted)
        return inserted

    async def rollup(self, since: date) -> list[DayCount]:
        """Count distinct commits per UTC day for days strictly after ``since``."""

        pool = self._ensure_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(ROLLUP_SQL, since)
        except _STORE_ERRORS as exc:
            raise StoreError(f"Rollup query failed: {exc}") from exc
        return [DayCount(day=row["day"], commit_count=row["commit_count"]) for row in rows]

    async def count(self) -> int:
        pool = self._ensure_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetchval("SELECT COUNT(*) FROM commit_data")
        except _STORE_ERRORS as exc:
            raise StoreError(f"Count query failed: {exc}") from exc

    def _ensure_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise StoreError("Database pool has not been initialized")
        return self._pool

    async def _init_connection(self, conn: asyncpg.Connection) -> None:
        await conn.execute("SET TIME ZONE 'UTC'")
        await conn.execute(f"SET statement_timeout = {int(self._settings.statement_timeout * 1000)}")


def dedupe_commits(commits: Iterable[Commit]) -> list[Commit]:
    """Drop repeated hashes, keeping the first occurrence."""

    seen: set[str] = set()
    unique: list[Commit] = []
    for commit in commits:
        if commit.hash in seen:
            continue
        seen.add(commit.hash)
        unique.append(commit)
    return unique


def _chunks(items: Sequence[Commit], size: int) -> Iterable[Sequence[Commit]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _load_sql_statements(path: Path) -> list[str]:
    script = path.read_text(encoding="utf-8")
    statements: list[str] = []
    for part in script.split(";"):
        statement = part.strip()
        if statement:
            statements.append(statement)
    return statements


__all__ = ["CommitStore", "dedupe_commits"]
