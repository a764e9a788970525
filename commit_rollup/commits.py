"""Fetching of a single repository's commits inside the sync window."""

from __future__ import annotations

import logging
from datetime import datetime

from .config import UTC
from .errors import UpstreamError
from .github_client import GitHubRestClient
from .models import Commit

LOGGER = logging.getLogger(__name__)

# GitHub answers 409 Conflict for repositories without any commits.
EMPTY_REPOSITORY_STATUS = 409


class CommitFetcher:
    """Retrieves commits of one repository made by one committer since a cutoff."""

    def __init__(self, client: GitHubRestClient, committer: str | None = None) -> None:
        self._client = client
        self._committer = committer or client.settings.account

    async def fetch_commits(
        self,
        repo_full_name: str,
        since: datetime,
        committer: str | None = None,
    ) -> list[Commit]:
        committer = committer or self._committer
        params: dict[str, str | int] = {
            "per_page": self._client.settings.page_size,
            "since": since.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
        if committer:
            params["committer"] = committer

        try:
            payload = await self._client.get_paginated(f"/repos/{repo_full_name}/commits", params)
        except UpstreamError as exc:
            if exc.status_code != EMPTY_REPOSITORY_STATUS:
                raise
            LOGGER.info("%s is empty; no commits to fetch", repo_full_name)
            return []

        commits = [Commit.from_api(item, repo_full_name) for item in payload]
        LOGGER.debug("Fetched %s commits from %s", len(commits), repo_full_name)
        return commits


__all__ = ["CommitFetcher", "EMPTY_REPOSITORY_STATUS"]
