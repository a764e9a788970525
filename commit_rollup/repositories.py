"""Listing of the repositories owned by the synced account."""

from __future__ import annotations

import logging

from .errors import ParseError
from .github_client import GitHubRestClient
from .models import Repository

LOGGER = logging.getLogger(__name__)


class RepositoryLister:
    """Retrieves the repositories of the authenticated account."""

    def __init__(self, client: GitHubRestClient) -> None:
        self._client = client
        self._account = client.settings.account

    async def resolve_account(self) -> str:
        """Return the configured account, asking ``GET /user`` when none is set."""

        if self._account:
            return self._account
        response = await self._client.get_json("/user")
        login = response.data.get("login") if isinstance(response.data, dict) else None
        if not isinstance(login, str) or not login:
            raise ParseError("GET /user response has no 'login'")
        LOGGER.info("Resolved account %s from token", login)
        self._account = login
        return login

    async def list_repositories(self) -> list[Repository]:
        settings = self._client.settings
        payload = await self._client.get_paginated(
            "/user/repos",
            {"per_page": settings.page_size, "type": settings.repo_visibility},
        )
        repositories = [Repository.from_api(item) for item in payload]
        LOGGER.info("Listed %s %s repositories", len(repositories), settings.repo_visibility)
        return repositories


__all__ = ["RepositoryLister"]
