"""HTTP client for interacting with GitHub's REST API."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from .config import GitHubSettings, RateLimitInfo
from .errors import (
    AuthError,
    GitHubError,
    ParseError,
    RateLimitError,
    RequestTimeoutError,
    UpstreamError,
)
from .rate_limiter import RateLimiter, rate_limit_from_headers

LOGGER = logging.getLogger(__name__)

_TRANSIENT_STATUSES = {502, 503, 504}


@dataclass(slots=True)
class RestResponse:
    data: Any
    next_url: str | None
    rate_limit: RateLimitInfo | None


class GitHubRestClient:
    """Light-weight REST client with retry, pagination and rate-limit support."""

    def __init__(
        self,
        settings: GitHubSettings,
        client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._settings = settings
        self._base_url = settings.api_url.rstrip("/")
        self._headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": settings.api_version,
            "User-Agent": "commit-rollup",
        }
        if settings.token:
            self._headers["Authorization"] = f"Bearer {settings.token}"
        self._client = client or httpx.AsyncClient(timeout=settings.request_timeout)
        self._owns_client = client is None
        self._rate_limiter = rate_limiter or RateLimiter(maximum_sleep=settings.max_backoff)

    async def __aenter__(self) -> "GitHubRestClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def settings(self) -> GitHubSettings:
        return self._settings

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> RestResponse:
        """Fetch a single page, retrying throttled and transient failures."""

        url = path if path.startswith(("http://", "https://")) else f"{self._base_url}/{path.lstrip('/')}"
        backoff = self._settings.initial_backoff
        attempt = 0

        while True:
            attempt += 1
            try:
                return await self._send(url, params)
            except (RateLimitError, RequestTimeoutError, UpstreamError) as exc:
                if not _is_retryable(exc) or attempt >= self._settings.max_retries:
                    raise
                delay = backoff
                if isinstance(exc, RateLimitError):
                    delay = _rate_limit_delay(exc) or backoff
                delay = min(delay, self._settings.max_backoff)
                LOGGER.warning(
                    "GET %s failed (%s); retrying in %.2fs (attempt %s/%s)",
                    url,
                    exc,
                    delay,
                    attempt,
                    self._settings.max_retries,
                )
                await asyncio.sleep(delay)
                backoff = min(max(backoff * 2, delay), self._settings.max_backoff)

    async def get_paginated(self, path: str, params: dict[str, Any] | None = None) -> list[Any]:
        """Fetch a JSON array, following ``Link: rel="next"`` when enabled."""

        items: list[Any] = []
        next_url: str | None = path
        page_params = params
        pages = 0
        while next_url is not None:
            response = await self.get_json(next_url, page_params)
            pages += 1
            if not isinstance(response.data, list):
                raise ParseError(f"Expected a JSON array from {path}, got {type(response.data).__name__}")
            items.extend(response.data)

            # The continuation URL already carries every query parameter.
            next_url = response.next_url
            page_params = None
            if next_url is None:
                break
            if not self._settings.follow_pagination:
                LOGGER.info("%s has more pages; pagination disabled, keeping the first page only", path)
                break
            if pages >= self._settings.max_pages:
                LOGGER.warning("%s exceeds %s pages; stopping pagination", path, self._settings.max_pages)
                break
        return items

    async def _send(self, url: str, params: dict[str, Any] | None) -> RestResponse:
        await self._rate_limiter.acquire()
        try:
            response = await self._client.get(url, params=params, headers=self._headers)
        except httpx.TimeoutException as exc:
            await self._rate_limiter.reset()
            raise RequestTimeoutError(f"GET {url} timed out after {self._settings.request_timeout}s") from exc
        except httpx.RequestError as exc:
            await self._rate_limiter.reset()
            raise UpstreamError(f"GET {url} failed: {exc}") from exc

        rate_limit = rate_limit_from_headers(response.headers)
        if rate_limit is not None:
            await self._rate_limiter.record(rate_limit)

        if response.is_success:
            try:
                data = response.json()
            except ValueError as exc:
                raise ParseError(f"GET {url} returned a body that is not valid JSON") from exc
            next_link = response.links.get("next") or {}
            return RestResponse(data=data, next_url=next_link.get("url"), rate_limit=rate_limit)

        raise _error_for_response(url, response, rate_limit)


def _error_for_response(url: str, response: httpx.Response, rate_limit: RateLimitInfo | None) -> GitHubError:
    status = response.status_code
    message = _error_message(response)
    detail = f"GET {url} returned HTTP {status}: {message}"

    if status == 429 or (status == 403 and _is_rate_limited(response, message)):
        return RateLimitError(
            detail,
            status_code=status,
            reset_at=rate_limit.reset_at if rate_limit else None,
            retry_after=_retry_after_seconds(response),
        )
    if status in {401, 403}:
        return AuthError(detail, status_code=status)
    return UpstreamError(detail, status_code=status)


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip()[:200] or response.reason_phrase
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return response.reason_phrase


def _is_rate_limited(response: httpx.Response, message: str) -> bool:
    if response.headers.get("X-RateLimit-Remaining") == "0":
        return True
    if "Retry-After" in response.headers:
        return True
    return "rate limit" in message.lower()


def _is_retryable(exc: GitHubError) -> bool:
    if isinstance(exc, (RateLimitError, RequestTimeoutError)):
        return True
    return exc.status_code is None or exc.status_code in _TRANSIENT_STATUSES


def _rate_limit_delay(exc: RateLimitError) -> float | None:
    if exc.retry_after is not None:
        return exc.retry_after
    if exc.reset_at is not None:
        return max((exc.reset_at - datetime.now(timezone.utc)).total_seconds(), 0.0)
    return None


def _retry_after_seconds(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except (TypeError, ValueError):
        pass

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at is None:
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    delta = (retry_at - datetime.now(timezone.utc)).total_seconds()
    return max(delta, 0.0)


__all__ = ["GitHubRestClient", "RestResponse"]
