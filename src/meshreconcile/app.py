"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING

from meshreconcile.adapters.kubernetes import KubernetesClient
from meshreconcile.domain.matching import SemanticMatcher
from meshreconcile.domain.reconciler import ReconcileOutcome, Reconciler
from meshreconcile.domain.state import Action
from meshreconcile.resources.egressgateway import COMPONENT_NAME as EGRESS_GATEWAY
from meshreconcile.resources.egressgateway import EgressGatewayReconciler

if TYPE_CHECKING:
    from meshreconcile.domain.matching import MatchRules
    from meshreconcile.domain.ports import ClusterClient
    from meshreconcile.resources.config import MeshConfig

type ComponentRunner = Callable[[Reconciler, MeshConfig], list[ReconcileOutcome]]


log = getLogger(__name__)


def _run_egress_gateway(reconciler: Reconciler, config: MeshConfig) -> list[ReconcileOutcome]:
    return EgressGatewayReconciler(reconciler=reconciler, config=config).reconcile()


COMPONENTS: dict[str, ComponentRunner] = {
    EGRESS_GATEWAY: _run_egress_gateway,
}


def reconcile_components(
    config: MeshConfig,
    *,
    components: list[str] | None = None,
    client: ClusterClient | None = None,
    rules: MatchRules | None = None,
) -> dict[str, list[ReconcileOutcome]]:
    """Reconcile the named components, in order, against the cluster.

    The first failed write is re-raised as its ``ReconcileError`` once the
    component has reported it; later components are not attempted.
    """

    names = components or list(COMPONENTS)
    unknown = [name for name in names if name not in COMPONENTS]
    if unknown:
        raise ValueError(f"Unknown components: {', '.join(unknown)}")

    effective_client = client or KubernetesClient()
    matcher = SemanticMatcher(rules) if rules is not None else SemanticMatcher()
    reconciler = Reconciler(client=effective_client, matcher=matcher)
    log.info(
        f"Starting reconcile: mesh={config.metadata.namespace}/{config.metadata.name}, "
        f"components={names}"
    )

    results: dict[str, list[ReconcileOutcome]] = {}
    for name in names:
        outcomes = COMPONENTS[name](reconciler, config)
        results[name] = outcomes
        for outcome in outcomes:
            if outcome.error is not None:
                raise outcome.error

    changed = sum(
        1
        for outcomes in results.values()
        for outcome in outcomes
        if outcome.action is not Action.NOOP
    )
    log.info(f"Finished reconcile: components={len(results)}, changed={changed}")
    return results
