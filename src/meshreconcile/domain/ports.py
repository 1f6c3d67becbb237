"""Ports consumed by the reconcile core."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .document import ResourceDocument, ResourceKind


@runtime_checkable
class ClusterClient(Protocol):
    """Source and sink of resource documents.

    Implementations raise ``ClusterClientError`` on transport or API failures
    and own any retry, backoff or rate limiting policy.
    """

    def get(self, kind: ResourceKind, namespace: str | None, name: str) -> ResourceDocument | None:
        """Return the live object or ``None`` when it does not exist."""
        ...

    def create(self, kind: ResourceKind, document: ResourceDocument) -> ResourceDocument: ...

    def update(self, kind: ResourceKind, document: ResourceDocument) -> ResourceDocument: ...

    def delete(self, kind: ResourceKind, document: ResourceDocument) -> None: ...


class SpecBuilder[ConfigT](Protocol):
    """Callable producing the desired document from configuration."""

    def __call__(self, config: ConfigT) -> ResourceDocument: ...


__all__ = ["ClusterClient", "SpecBuilder"]
