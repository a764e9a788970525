"""Domain models used by the sync pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from .config import UTC, parse_datetime
from .errors import ParseError


@dataclass(slots=True, frozen=True)
class Repository:
    """Repository owned by the synced account."""

    id: int
    name: str
    full_name: str

    @classmethod
    def from_api(cls, payload: Any) -> "Repository":
        """Convert an item of ``GET /user/repos`` into a :class:`Repository`."""

        if not isinstance(payload, dict):
            raise ParseError(f"Expected repository object, got {type(payload).__name__}")

        repo_id = payload.get("id")
        name = payload.get("name")
        full_name = payload.get("full_name")
        if not isinstance(repo_id, int) or isinstance(repo_id, bool):
            raise ParseError(f"Repository {full_name or name!r} has no integer 'id'")
        if not isinstance(name, str) or not name:
            raise ParseError(f"Repository {repo_id} has no 'name'")
        if not isinstance(full_name, str) or "/" not in full_name:
            raise ParseError(f"Repository {repo_id} has no 'full_name' of the form owner/slug")

        return cls(id=repo_id, name=name, full_name=full_name)


@dataclass(slots=True, frozen=True)
class Commit:
    """A single commit authored by the synced account."""

    hash: str
    author_date: datetime
    repo_full_name: str

    @classmethod
    def from_api(cls, payload: Any, repo_full_name: str) -> "Commit":
        """Convert an item of ``GET /repos/{full_name}/commits``.

        The author timestamp lives under ``commit.author.date`` and keeps its
        full precision; day bucketing only happens in the rollup query.
        """

        if not isinstance(payload, dict):
            raise ParseError(f"{repo_full_name}: expected commit object, got {type(payload).__name__}")

        sha = payload.get("sha")
        if not isinstance(sha, str) or not sha:
            raise ParseError(f"{repo_full_name}: commit record without 'sha'")

        inner = payload.get("commit")
        author = inner.get("author") if isinstance(inner, dict) else None
        raw_date = author.get("date") if isinstance(author, dict) else None
        if not isinstance(raw_date, str) or not raw_date:
            raise ParseError(f"{repo_full_name}: commit {sha} has no 'commit.author.date'")

        try:
            author_date = parse_datetime(raw_date)
        except ValueError as exc:
            raise ParseError(f"{repo_full_name}: commit {sha} has malformed date {raw_date!r}") from exc

        return cls(hash=sha, author_date=author_date, repo_full_name=repo_full_name)


@dataclass(slots=True, frozen=True)
class SyncWindow:
    """Rolling lookback boundary, recomputed at the start of every sync."""

    since: datetime

    @classmethod
    def ending_at(cls, now: datetime, weeks: int = 52) -> "SyncWindow":
        return cls(since=now.astimezone(UTC) - timedelta(weeks=weeks))

    def to_query_param(self) -> str:
        return self.since.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(slots=True, frozen=True)
class DayCount:
    day: date
    commit_count: int

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.day.isoformat(), "commit_count": self.commit_count}


__all__ = ["Commit", "DayCount", "Repository", "SyncWindow"]
