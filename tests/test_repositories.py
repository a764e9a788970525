from __future__ import annotations

import asyncio

import httpx
import pytest

from commit_rollup.config import GitHubSettings
from commit_rollup.errors import AuthError, ParseError
from commit_rollup.github_client import GitHubRestClient
from commit_rollup.models import Repository
from commit_rollup.repositories import RepositoryLister


def _run(handler, scenario, **settings):
    async def runner():
        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(transport=transport) as async_client:
            client = GitHubRestClient(GitHubSettings(token="t", initial_backoff=0.0, **settings), async_client)
            return await scenario(RepositoryLister(client))

    return asyncio.run(runner())


def test_list_repositories_requests_public_repos_page():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json=[
                {"id": 1, "name": "a", "full_name": "octocat/a"},
                {"id": 2, "name": "b", "full_name": "octocat/b"},
            ],
        )

    repositories = _run(handler, lambda lister: lister.list_repositories())

    assert repositories == [
        Repository(id=1, name="a", full_name="octocat/a"),
        Repository(id=2, name="b", full_name="octocat/b"),
    ]
    assert requests[0].url.path == "/user/repos"
    assert requests[0].url.params["per_page"] == "100"
    assert requests[0].url.params["type"] == "public"


def test_list_repositories_follows_pagination():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("page") == "2":
            return httpx.Response(200, json=[{"id": 2, "name": "b", "full_name": "octocat/b"}])
        return httpx.Response(
            200,
            json=[{"id": 1, "name": "a", "full_name": "octocat/a"}],
            headers={"Link": '<https://api.github.com/user/repos?per_page=100&type=public&page=2>; rel="next"'},
        )

    repositories = _run(handler, lambda lister: lister.list_repositories())

    assert [repository.full_name for repository in repositories] == ["octocat/a", "octocat/b"]


def test_list_repositories_rejects_malformed_item():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"id": 1, "name": "a"}])

    with pytest.raises(ParseError):
        _run(handler, lambda lister: lister.list_repositories())


def test_list_repositories_surfaces_auth_error():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "Bad credentials"})

    with pytest.raises(AuthError):
        _run(handler, lambda lister: lister.list_repositories())


def test_resolve_account_prefers_configuration():
    def handler(_: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be called
        raise AssertionError("no request expected")

    account = _run(handler, lambda lister: lister.resolve_account(), account="configured")

    assert account == "configured"


def test_resolve_account_looks_up_token_owner():
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        assert request.url.path == "/user"
        return httpx.Response(200, json={"login": "octocat", "id": 1})

    async def scenario(lister: RepositoryLister) -> tuple[str, str]:
        return await lister.resolve_account(), await lister.resolve_account()

    first, second = _run(handler, scenario)

    assert first == second == "octocat"
    assert calls == 1
