"""Public interface for the Kubernetes API adapter."""

from __future__ import annotations

from .client import KubernetesClient, resource_path
from .schema import DeleteOptions, Status, StatusCause, StatusDetails

__all__ = [
    "DeleteOptions",
    "KubernetesClient",
    "Status",
    "StatusCause",
    "StatusDetails",
    "resource_path",
]
