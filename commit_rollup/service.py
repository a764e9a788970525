"""Request/response surface: trigger a sync, read the daily rollup."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable

from .commits import CommitFetcher
from .config import AppConfig, UTC
from .coordinator import SyncCoordinator
from .db import CommitStore
from .errors import CommitRollupError
from .github_client import GitHubRestClient
from .models import DayCount, SyncWindow
from .repositories import RepositoryLister

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(slots=True)
class SyncOutcome:
    ok: bool
    error: str | None = None
    commits_fetched: int = 0
    commits_inserted: int = 0
    since: datetime | None = None


@dataclass(slots=True)
class RollupOutcome:
    ok: bool
    counts: list[DayCount] = field(default_factory=list)
    error: str | None = None
    since: date | None = None

    def to_json(self) -> list[dict[str, Any]]:
        return [count.to_dict() for count in self.counts]


class SyncService:
    """Runs the full pipeline and answers rollup queries.

    Failures never escape as exceptions for errors the pipeline knows about;
    they come back as an outcome with ``ok=False`` and the error message.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        store: CommitStore,
        window_weeks: int = 52,
        clock: Clock = utcnow,
    ) -> None:
        self._coordinator = coordinator
        self._store = store
        self._window_weeks = window_weeks
        self._clock = clock

    def window(self) -> SyncWindow:
        return SyncWindow.ending_at(self._clock(), self._window_weeks)

    async def trigger_sync(self) -> SyncOutcome:
        window = self.window()
        try:
            await self._store.ensure_schema()
            commits = await self._coordinator.run(window)
            inserted = await self._store.persist(commits)
        except CommitRollupError as exc:
            LOGGER.error("Sync failed: %s", exc)
            return SyncOutcome(ok=False, error=str(exc), since=window.since)

        LOGGER.info("Sync finished: %s commits fetched, %s new", len(commits), inserted)
        return SyncOutcome(
            ok=True,
            commits_fetched=len(commits),
            commits_inserted=inserted,
            since=window.since,
        )

    async def get_rollup(self) -> RollupOutcome:
        since = self.window().since.date()
        try:
            counts = await self._store.rollup(since)
        except CommitRollupError as exc:
            LOGGER.error("Rollup failed: %s", exc)
            return RollupOutcome(ok=False, error=str(exc), since=since)
        return RollupOutcome(ok=True, counts=sorted(counts, key=lambda count: count.day), since=since)


def create_service(
    config: AppConfig,
    client: GitHubRestClient,
    store: CommitStore,
    clock: Clock = utcnow,
) -> SyncService:
    """Wire the lister, fetcher and coordinator for one account."""

    lister = RepositoryLister(client)
    fetcher = CommitFetcher(client)
    coordinator = SyncCoordinator(lister, fetcher, config.github.max_concurrency)
    return SyncService(coordinator, store, window_weeks=config.sync.window_weeks, clock=clock)


__all__ = ["RollupOutcome", "SyncOutcome", "SyncService", "create_service", "utcnow"]
