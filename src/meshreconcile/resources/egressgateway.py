"""Egress gateway component.

Responsibilities:
- derive the policy flags from the mesh configuration
- build the egress ``MeshGateway`` and, outside the ``istio-config`` mesh,
  the multi-mesh ``Gateway`` that routes ``*.global`` traffic through it
- reconcile both in order, stopping at the first failure
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Any

from meshreconcile.domain.document import ResourceDocument, ResourceKind
from meshreconcile.domain.paths import FieldPath
from meshreconcile.domain.state import PolicyFlags

from .templates import merge_labels, object_meta

if TYPE_CHECKING:
    from collections.abc import Iterator

    from meshreconcile.domain.ports import SpecBuilder
    from meshreconcile.domain.reconciler import ReconcileOutcome, Reconciler
    from meshreconcile.domain.state import DesiredState

    from .config import MeshConfig

log = getLogger(__name__)

COMPONENT_NAME = "egressgateway"
RESOURCE_NAME = "istio-egressgateway"
MULTIMESH_RESOURCE_NAME = "istio-multicluster-egressgateway"
RESOURCE_LABELS = {"app": "istio-egressgateway", "istio": "egressgateway"}
GATEWAY_TYPE = "egress"

# The shared configuration object reconciles its own multi-mesh gateway.
SHARED_CONFIG_NAME = "istio-config"

MULTIMESH_PORT = 15443
MULTIMESH_HOSTS = ("*.global",)

MESH_GATEWAY_KIND = ResourceKind(
    group="istio.banzaicloud.io",
    version="v1beta1",
    kind="MeshGateway",
    plural="meshgateways",
)
GATEWAY_KIND = ResourceKind(
    group="networking.istio.io",
    version="v1alpha3",
    kind="Gateway",
    plural="gateways",
)


def egress_policy(config: MeshConfig) -> PolicyFlags:
    gateways = config.spec.gateways
    egress_enabled = bool(gateways.egress.enabled)
    return PolicyFlags(
        enabled=bool(gateways.enabled) and egress_enabled,
        create_only=bool(gateways.egress.create_only),
        multi_mesh_enabled=bool(config.spec.multi_mesh) and egress_enabled,
    )


def gateway_labels(config: MeshConfig) -> dict[str, str]:
    return merge_labels(RESOURCE_LABELS, config.spec.gateways.egress.labels)


def build_mesh_gateway(config: MeshConfig) -> ResourceDocument:
    egress = config.spec.gateways.egress
    labels = gateway_labels(config)

    spec: dict[str, Any] = egress.gateway_configuration().to_document()
    spec["labels"] = labels
    spec["ports"] = [port.to_document() for port in egress.ports]
    spec["type"] = GATEWAY_TYPE

    return ResourceDocument.from_body(
        MESH_GATEWAY_KIND,
        {"metadata": object_meta(RESOURCE_NAME, labels, config), "spec": spec},
    )


def build_multimesh_gateway(config: MeshConfig) -> ResourceDocument:
    labels = gateway_labels(config)
    server = {
        "hosts": list(MULTIMESH_HOSTS),
        "port": {"name": "tls", "protocol": "TLS", "number": MULTIMESH_PORT},
        "tls": {"mode": "AUTO_PASSTHROUGH"},
    }
    return ResourceDocument.from_body(
        GATEWAY_KIND,
        {
            "metadata": object_meta(MULTIMESH_RESOURCE_NAME, labels, config),
            "spec": {"servers": [server], "selector": labels},
        },
    )


@dataclass(slots=True)
class EgressGatewayReconciler:
    reconciler: Reconciler
    config: MeshConfig

    def reconcile(self) -> list[ReconcileOutcome]:
        log.info(f"Reconciling component={COMPONENT_NAME} mesh={self.config.metadata.name}")
        outcomes = self.reconciler.reconcile_all(self._desired_resources())

        for outcome in outcomes:
            if outcome.error is not None:
                return outcomes
            diff = [str(path) for path in sorted(outcome.diff_paths, key=FieldPath.sort_key)]
            log.debug(f"{outcome.kind.kind} {outcome.key}: {outcome.action} diff={diff}")

        log.info(f"Reconciled component={COMPONENT_NAME}")
        return outcomes

    def _desired_resources(self) -> Iterator[tuple[ResourceDocument, DesiredState]]:
        policy = egress_policy(self.config)
        builders: list[tuple[SpecBuilder[MeshConfig], DesiredState]] = [
            (build_mesh_gateway, policy.desired_state()),
        ]
        if self.config.metadata.name != SHARED_CONFIG_NAME:
            builders.append((build_multimesh_gateway, policy.multi_mesh_state()))
        for builder, state in builders:
            yield builder(self.config), state
