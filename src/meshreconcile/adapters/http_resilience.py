"""Async HTTP client with retry, backoff and client-side rate limiting.

The retry transport from ``httpx-retries`` sits below the client, so every
attempt passes through it; the ``aiolimiter`` bucket sits above it and admits
one logical request at a time. TLS verification accepts a CA bundle path for
clusters signed by a private authority.
"""

from __future__ import annotations

import ssl
from functools import cache
from logging import getLogger
from typing import TYPE_CHECKING, TypedDict, Unpack

import httpx
from aiolimiter import AsyncLimiter
from httpx_retries import Retry, RetryTransport

if TYPE_CHECKING:
    from types import TracebackType

    from httpx._types import HeaderTypes, QueryParamTypes, TimeoutTypes, URLTypes

    from meshreconcile.config.http_resilience import RateLimit, ResilienceConfig, RetryPolicy

__all__ = ["ResilientClient", "build_limiter", "build_retry"]

log = getLogger(__name__)


class RequestOptions(TypedDict, total=False):
    json: object
    params: QueryParamTypes | None
    headers: HeaderTypes | None
    timeout: TimeoutTypes


class AsyncClientOptions(TypedDict, total=False):
    base_url: str
    timeout: TimeoutTypes
    headers: HeaderTypes
    transport: httpx.AsyncBaseTransport


def build_retry(policy: RetryPolicy) -> Retry:
    return Retry(
        total=policy.total,
        backoff_factor=policy.backoff_factor,
        max_backoff_wait=policy.max_backoff_wait,
        respect_retry_after_header=policy.respect_retry_after_header,
        allowed_methods=tuple(policy.allowed_methods),
        status_forcelist=tuple(policy.status_forcelist),
        retry_on_exceptions=policy.retry_on_exceptions,
        backoff_jitter=policy.backoff_jitter,
    )


def build_limiter(ratelimit: RateLimit | None) -> AsyncLimiter | None:
    if ratelimit is None:
        return None
    return AsyncLimiter(ratelimit.max_calls, ratelimit.per_seconds)


@cache
def _ssl_verification(verify: bool | str) -> bool | ssl.SSLContext:
    if isinstance(verify, str):
        return ssl.create_default_context(cafile=verify)
    return verify


class ResilientClient:
    """One ``httpx.AsyncClient`` bound to a ``ResilienceConfig``.

    Instances are single-use per event loop because the connection pool
    belongs to the loop that created it. Pass ``limiter`` to share one bucket
    between clients opened for successive calls.
    """

    def __init__(
        self,
        config: ResilienceConfig,
        *,
        limiter: AsyncLimiter | None = None,
    ) -> None:
        self.config = config
        self._limiter = limiter if limiter is not None else build_limiter(config.ratelimit)

        options: AsyncClientOptions = {
            "timeout": config.timeout_seconds,
            "transport": RetryTransport(
                transport=httpx.AsyncHTTPTransport(verify=_ssl_verification(config.verify)),
                retry=build_retry(config.retry),
            ),
        }
        if config.base_url is not None:
            options["base_url"] = config.base_url
        if config.default_headers:
            options["headers"] = dict(config.default_headers)

        self._client = httpx.AsyncClient(**options)

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        url: URLTypes,
        **kwargs: Unpack[RequestOptions],
    ) -> httpx.Response:
        if self._limiter is None:
            return await self._client.request(method, url, **kwargs)
        if not self._limiter.has_capacity():
            log.debug(f"[{self.config.name}] rate limit reached, waiting to send {method} {url}")
        async with self._limiter:
            return await self._client.request(method, url, **kwargs)
