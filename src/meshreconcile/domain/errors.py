"""Error taxonomy shared by the matcher, the resolver and client adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .document import ObjectKey, ResourceKind
    from .paths import FieldPath
    from .state import Action


class MeshReconcileError(RuntimeError):
    """Base class for reconciliation failures."""


class MatchError(MeshReconcileError):
    """Raised when two documents cannot be compared at all."""


class SerializeError(MatchError):
    """Raised when a document cannot be canonicalised (malformed input)."""

    def __init__(self, message: str, *, path: FieldPath | None = None) -> None:
        if path is not None and path.segments:
            message = f"{message} (at {path})"
        super().__init__(message)
        self.path = path


class IdentityMismatchError(MatchError):
    """Raised when documents of different kind or identity are matched."""


class ClusterClientError(MeshReconcileError):
    """Raised by cluster client adapters on transport or API failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


class ReconcileError(MeshReconcileError):
    """A failed reconcile step, annotated with the resource it concerned.

    The underlying client error is kept as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: ResourceKind,
        key: ObjectKey,
        action: Action | None = None,
    ) -> None:
        details = f"kind={kind}, object={key}"
        if action is not None:
            details = f"{details}, action={action}"
        super().__init__(f"{message}: {details}")
        self.kind = kind
        self.key = key
        self.action = action
