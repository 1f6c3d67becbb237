"""Object metadata shared by every resource a component builds."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .config import MeshConfig


def merge_labels(*label_sets: Mapping[str, str] | None) -> dict[str, str]:
    """Merge label maps left to right; later maps win."""

    merged: dict[str, str] = {}
    for labels in label_sets:
        if labels:
            merged.update(labels)
    return merged


def owner_references(config: MeshConfig) -> list[dict[str, Any]]:
    if config.metadata.uid is None:
        return []
    return [
        {
            "apiVersion": config.api_version,
            "kind": config.kind,
            "name": config.metadata.name,
            "uid": config.metadata.uid,
            "controller": True,
        }
    ]


def object_meta(name: str, labels: Mapping[str, str], config: MeshConfig) -> dict[str, Any]:
    meta: dict[str, Any] = {
        "name": name,
        "namespace": config.metadata.namespace,
        "labels": dict(labels),
    }
    references = owner_references(config)
    if references:
        meta["ownerReferences"] = references
    return meta
