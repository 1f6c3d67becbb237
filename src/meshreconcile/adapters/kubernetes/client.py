"""HTTP client for the Kubernetes API.

Schema-less: every object travels as a ``ResourceDocument`` whose kind names
the REST collection. Retry, backoff and rate limiting come from the resilient
HTTP client.
"""

from __future__ import annotations

import asyncio
import dataclasses
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from meshreconcile.adapters.http_resilience import ResilientClient, build_limiter
from meshreconcile.config.cluster import get_cluster_config
from meshreconcile.domain.document import ResourceDocument
from meshreconcile.domain.errors import ClusterClientError

from .schema import DeleteOptions, Status

if TYPE_CHECKING:
    from collections.abc import Callable

    from aiolimiter import AsyncLimiter

    from meshreconcile.config.cluster import ClusterConfig
    from meshreconcile.config.http_resilience import ResilienceConfig
    from meshreconcile.domain.document import ResourceKind
    from meshreconcile.domain.ports import ClusterClient

log = getLogger(__name__)

DEFAULT_FIELD_MANAGER = "meshreconcile"


def resource_path(kind: ResourceKind, namespace: str | None, name: str | None = None) -> str:
    """Return the REST path of a collection, or of one object when ``name`` is given."""

    parts = ["api", kind.version] if not kind.group else ["apis", kind.group, kind.version]
    if kind.namespaced:
        if not namespace:
            raise ValueError(f"{kind.kind} is namespaced but no namespace was given")
        parts.extend(["namespaces", namespace])
    parts.append(kind.plural)
    if name is not None:
        parts.append(name)
    return "/" + "/".join(quote(part, safe="") for part in parts)


def _default_client_factory(
    config: ResilienceConfig,
    limiter: AsyncLimiter | None,
) -> ResilientClient:
    return ResilientClient(config, limiter=limiter)


@dataclass(slots=True)
class KubernetesClient:
    """``ClusterClient`` over the Kubernetes REST API.

    Each call opens its own HTTP client on its own event loop; the rate limit
    bucket is created once and shared by all of them.
    """

    config: ClusterConfig = field(default_factory=get_cluster_config)
    client_factory: Callable[[ResilienceConfig, AsyncLimiter | None], ResilientClient] = field(
        default=_default_client_factory
    )
    field_manager: str = DEFAULT_FIELD_MANAGER
    limiter: AsyncLimiter | None = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        self.limiter = build_limiter(self.config.resilience.ratelimit)

    def get(self, kind: ResourceKind, namespace: str | None, name: str) -> ResourceDocument | None:
        return asyncio.run(self._get(kind, namespace, name))

    def create(self, kind: ResourceKind, document: ResourceDocument) -> ResourceDocument:
        return asyncio.run(self._create(kind, document))

    def update(self, kind: ResourceKind, document: ResourceDocument) -> ResourceDocument:
        return asyncio.run(self._update(kind, document))

    def delete(self, kind: ResourceKind, document: ResourceDocument) -> None:
        asyncio.run(self._delete(kind, document))

    async def _get(
        self,
        kind: ResourceKind,
        namespace: str | None,
        name: str,
    ) -> ResourceDocument | None:
        path = resource_path(kind, namespace, name)
        response = await self._perform_request("GET", path)
        if response.status_code == httpx.codes.NOT_FOUND:
            log.debug(f"{kind.kind} {path} not found")
            return None
        return self._parse_document(kind, response, path)

    async def _create(self, kind: ResourceKind, document: ResourceDocument) -> ResourceDocument:
        key = document.key
        path = resource_path(kind, key.namespace)
        response = await self._perform_request(
            "POST",
            path,
            json=document.to_body(),
            params={"fieldManager": self.field_manager},
        )
        return self._parse_document(kind, response, path)

    async def _update(self, kind: ResourceKind, document: ResourceDocument) -> ResourceDocument:
        key = document.key
        path = resource_path(kind, key.namespace, key.name)
        response = await self._perform_request(
            "PUT",
            path,
            json=document.to_body(),
            params={"fieldManager": self.field_manager},
        )
        return self._parse_document(kind, response, path)

    async def _delete(self, kind: ResourceKind, document: ResourceDocument) -> None:
        key = document.key
        path = resource_path(kind, key.namespace, key.name)
        uid = document.metadata.get("uid")
        options = DeleteOptions(preconditions={"uid": uid} if isinstance(uid, str) else None)
        response = await self._perform_request(
            "DELETE",
            path,
            json=options.model_dump(by_alias=True, exclude_none=True),
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            log.debug(f"{kind.kind} {path} already deleted")
            return
        self._raise_for_status(response, path)

    async def _perform_request(
        self,
        method: str,
        path: str,
        *,
        json: object | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        log.debug(f"{method} {path}")
        try:
            async with self.client_factory(self._resilience(), self.limiter) as client:
                return await client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            raise ClusterClientError(f"{method} {path} failed: {exc}") from exc

    def _resilience(self) -> ResilienceConfig:
        headers = dict(self.config.resilience.default_headers or {})
        headers.setdefault("Accept", "application/json")
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return dataclasses.replace(
            self.config.resilience,
            base_url=self.config.resilience.base_url or self.config.api_server,
            default_headers=headers,
        )

    def _parse_document(
        self,
        kind: ResourceKind,
        response: httpx.Response,
        path: str,
    ) -> ResourceDocument:
        self._raise_for_status(response, path)
        try:
            payload: Any = response.json()
        except ValueError as exc:
            raise ClusterClientError(f"Invalid JSON from {path}") from exc
        if not isinstance(payload, dict):
            raise ClusterClientError(f"Unexpected payload from {path}")
        return ResourceDocument(kind=kind, body=payload)

    def _raise_for_status(self, response: httpx.Response, path: str) -> None:
        if response.is_success:
            return

        message = response.reason_phrase or "request failed"
        reason: str | None = None
        try:
            status = Status.model_validate(response.json())
        except ValueError:
            status = None
        if status is not None and status.kind == "Status":
            message = status.describe()
            reason = status.reason

        log.error(f"Kubernetes API error {response.status_code} on {path}: {message}")
        raise ClusterClientError(
            f"{response.request.method} {path}: {message}",
            status_code=response.status_code,
            reason=reason,
        )


if TYPE_CHECKING:
    _client_check: ClusterClient = KubernetesClient()
