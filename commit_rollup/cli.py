"""Command line interface for the commit rollup service."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

import typer
from dotenv import find_dotenv, load_dotenv

from .config import AppConfig
from .db import CommitStore
from .errors import StoreError
from .github_client import GitHubRestClient
from .service import create_service

app = typer.Typer(add_completion=False)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _load_config(overrides: dict) -> AppConfig:
    load_dotenv(find_dotenv(usecwd=True))
    return AppConfig.from_env(overrides=overrides)


@app.command("init-db")
def init_db(
    dsn: Optional[str] = typer.Option(None, help="Postgres DSN to use"),
    log_level: str = typer.Option("INFO", help="Logging level"),
) -> None:
    """Create the commit table."""

    configure_logging(log_level)
    config = _load_config({"database_dsn": dsn} if dsn else {})

    async def runner() -> None:
        async with CommitStore(config.database) as store:
            await store.ensure_schema()

    try:
        asyncio.run(runner())
    except StoreError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)


@app.command("sync")
def sync(
    dsn: Optional[str] = typer.Option(None, help="Postgres DSN"),
    github_token: Optional[str] = typer.Option(None, envvar="GITHUB_TOKEN", help="GitHub token"),
    account: Optional[str] = typer.Option(None, help="Account whose commits are synced"),
    concurrency: Optional[int] = typer.Option(None, min=1, help="Maximum concurrent repository fetches"),
    log_level: str = typer.Option("INFO", help="Logging level"),
) -> None:
    """Fetch commits from every repository and store them."""

    configure_logging(log_level)
    overrides = {}
    if dsn:
        overrides["database_dsn"] = dsn
    if github_token:
        overrides["github_token"] = github_token
    if account:
        overrides["github_account"] = account
    if concurrency:
        overrides["github_max_concurrency"] = concurrency

    config = _load_config(overrides)
    if not config.github.token:
        raise typer.BadParameter("A GitHub token is required")

    async def runner():
        async with GitHubRestClient(config.github) as client:
            async with CommitStore(config.database) as store:
                return await create_service(config, client, store).trigger_sync()

    try:
        outcome = asyncio.run(runner())
    except StoreError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)

    if not outcome.ok:
        typer.echo(outcome.error, err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Success: fetched {outcome.commits_fetched} commits, {outcome.commits_inserted} new.")


@app.command("counts")
def counts(
    dsn: Optional[str] = typer.Option(None, help="Postgres DSN"),
    log_level: str = typer.Option("WARNING", help="Logging level"),
) -> None:
    """Print commits per day for the last sync window as JSON."""

    configure_logging(log_level)
    config = _load_config({"database_dsn": dsn} if dsn else {})

    async def runner():
        async with GitHubRestClient(config.github) as client:
            async with CommitStore(config.database) as store:
                return await create_service(config, client, store).get_rollup()

    try:
        outcome = asyncio.run(runner())
    except StoreError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)

    if not outcome.ok:
        typer.echo(outcome.error, err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(outcome.to_json()))


__all__ = ["app"]
