"""Concurrent fan-out of commit fetches across every repository."""

from __future__ import annotations

import asyncio
import logging

from .commits import CommitFetcher
from .models import Commit, Repository, SyncWindow
from .repositories import RepositoryLister

LOGGER = logging.getLogger(__name__)


class SyncCoordinator:
    """Fetches the commits of all repositories and merges them.

    The result is all-or-nothing: either the commits of every repository or
    the first error raised by any fetch. Once a fetch fails the remaining tasks
    are cancelled, which aborts their in-flight requests.
    """

    def __init__(self, lister: RepositoryLister, fetcher: CommitFetcher, max_concurrency: int) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._lister = lister
        self._fetcher = fetcher
        self._max_concurrency = max_concurrency

    async def run(self, window: SyncWindow) -> list[Commit]:
        account = await self._lister.resolve_account()
        repositories = await self._lister.list_repositories()
        LOGGER.info(
            "Fetching commits by %s since %s from %s repositories (concurrency %s)",
            account,
            window.to_query_param(),
            len(repositories),
            self._max_concurrency,
        )
        if not repositories:
            return []

        commits: list[Commit] = []
        commits_lock = asyncio.Lock()
        errors: list[BaseException] = []
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def fetch(repository: Repository) -> None:
            try:
                async with semaphore:
                    repo_commits = await self._fetcher.fetch_commits(repository.full_name, window.since, account)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                LOGGER.error("Fetching commits from %s failed: %s", repository.full_name, exc)
                errors.append(exc)
                raise
            async with commits_lock:
                commits.extend(repo_commits)

        tasks = [
            asyncio.create_task(fetch(repository), name=f"fetch-commits:{repository.full_name}")
            for repository in repositories
        ]
        try:
            _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            await _cancel_all(tasks)
            raise

        if errors:
            if pending:
                LOGGER.info("Cancelling %s outstanding repository fetches", len(pending))
            await _cancel_all(tasks)
            raise errors[0]

        LOGGER.info("Fetched %s commits from %s repositories", len(commits), len(repositories))
        return commits


async def _cancel_all(tasks) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


__all__ = ["SyncCoordinator"]
