from __future__ import annotations

import logging
from typing import Any

import pytest

from meshreconcile.domain.errors import ClusterClientError
from meshreconcile.domain.reconciler import Reconciler
from meshreconcile.domain.state import Action, DesiredState
from meshreconcile.resources.config import MeshConfig
from meshreconcile.resources.egressgateway import (
    GATEWAY_KIND,
    MESH_GATEWAY_KIND,
    MULTIMESH_RESOURCE_NAME,
    RESOURCE_NAME,
    EgressGatewayReconciler,
    build_mesh_gateway,
    build_multimesh_gateway,
    egress_policy,
)
from tests.support.cluster import FakeCluster


def _config(
    *,
    name: str = "mesh",
    gateways_enabled: bool | None = True,
    egress: dict[str, Any] | None = None,
    multi_mesh: bool | None = None,
) -> MeshConfig:
    egress_spec: dict[str, Any] = {"enabled": True, **(egress or {})}
    return MeshConfig.model_validate(
        {
            "metadata": {"name": name, "namespace": "istio-system", "uid": "mesh-uid"},
            "spec": {
                "gateways": {"enabled": gateways_enabled, "egress": egress_spec},
                "multiMesh": multi_mesh,
            },
        }
    )


def _reconcile(cluster: FakeCluster, config: MeshConfig) -> list[Action]:
    component = EgressGatewayReconciler(reconciler=Reconciler(client=cluster), config=config)
    return [outcome.action for outcome in component.reconcile()]


@pytest.mark.parametrize(
    ("gateways", "egress", "multi_mesh", "expected"),
    [
        (True, True, True, (DesiredState.PRESENT, DesiredState.PRESENT)),
        (True, True, None, (DesiredState.PRESENT, DesiredState.ABSENT)),
        (None, True, True, (DesiredState.ABSENT, DesiredState.PRESENT)),
        (True, False, True, (DesiredState.ABSENT, DesiredState.ABSENT)),
        (True, None, None, (DesiredState.ABSENT, DesiredState.ABSENT)),
    ],
)
def test_policy_combines_gateway_switches(
    gateways: bool | None,  # noqa: FBT001
    egress: bool | None,  # noqa: FBT001
    multi_mesh: bool | None,  # noqa: FBT001
    expected: tuple[DesiredState, DesiredState],
) -> None:
    config = _config(gateways_enabled=gateways, egress={"enabled": egress}, multi_mesh=multi_mesh)

    policy = egress_policy(config)

    assert (policy.desired_state(), policy.multi_mesh_state()) == expected


def test_create_only_applies_to_both_resources() -> None:
    policy = egress_policy(_config(egress={"createOnly": True}, multi_mesh=True))

    assert policy.desired_state() is DesiredState.EXISTS
    assert policy.multi_mesh_state() is DesiredState.EXISTS


def test_mesh_gateway_document() -> None:
    config = _config(
        egress={
            "labels": {"app": "custom-egress", "team": "net"},
            "replicaCount": 2,
            "serviceType": "ClusterIP",
            "ports": [{"name": "tls", "port": 443, "targetPort": 8443}],
            "createOnly": False,
        }
    )

    document = build_mesh_gateway(config)

    assert document.kind == MESH_GATEWAY_KIND
    assert document.body["apiVersion"] == "istio.banzaicloud.io/v1beta1"
    assert document.body["kind"] == "MeshGateway"
    assert str(document.key) == f"istio-system/{RESOURCE_NAME}"
    labels = {"app": "custom-egress", "istio": "egressgateway", "team": "net"}
    assert document.metadata["labels"] == labels
    assert document.metadata["ownerReferences"][0]["uid"] == "mesh-uid"
    assert document.body["spec"] == {
        "labels": labels,
        "replicaCount": 2,
        "serviceType": "ClusterIP",
        "ports": [{"name": "tls", "port": 443, "targetPort": 8443}],
        "type": "egress",
    }


def test_multimesh_gateway_document() -> None:
    document = build_multimesh_gateway(_config(multi_mesh=True))

    assert document.kind == GATEWAY_KIND
    assert document.body["apiVersion"] == "networking.istio.io/v1alpha3"
    assert document.key.name == MULTIMESH_RESOURCE_NAME
    assert document.body["spec"] == {
        "selector": {"app": "istio-egressgateway", "istio": "egressgateway"},
        "servers": [
            {
                "hosts": ["*.global"],
                "port": {"name": "tls", "protocol": "TLS", "number": 15443},
                "tls": {"mode": "AUTO_PASSTHROUGH"},
            }
        ],
    }


def test_enabled_component_creates_both_resources_then_settles(cluster: FakeCluster) -> None:
    config = _config(multi_mesh=True, egress={"ports": [{"name": "tls", "port": 443}]})

    assert _reconcile(cluster, config) == [Action.CREATE, Action.CREATE]
    assert _reconcile(cluster, config) == [Action.NOOP, Action.NOOP]
    assert cluster.live(MESH_GATEWAY_KIND, RESOURCE_NAME) is not None
    assert cluster.live(GATEWAY_KIND, MULTIMESH_RESOURCE_NAME) is not None


def test_configuration_change_updates_the_mesh_gateway(cluster: FakeCluster) -> None:
    _reconcile(cluster, _config(egress={"replicaCount": 1}))

    actions = _reconcile(cluster, _config(egress={"replicaCount": 3}))

    assert actions == [Action.UPDATE, Action.NOOP]
    assert cluster.live(MESH_GATEWAY_KIND, RESOURCE_NAME)["spec"]["replicaCount"] == 3


def test_disabling_egress_removes_both_resources(cluster: FakeCluster) -> None:
    _reconcile(cluster, _config(multi_mesh=True))

    actions = _reconcile(cluster, _config(egress={"enabled": False}, multi_mesh=True))

    assert actions == [Action.DELETE, Action.DELETE]
    assert cluster.objects == {}


def test_shared_config_skips_the_multimesh_gateway(cluster: FakeCluster) -> None:
    actions = _reconcile(cluster, _config(name="istio-config", multi_mesh=True))

    assert actions == [Action.CREATE]
    assert [kind for _, kind, _ in cluster.calls] == ["MeshGateway", "MeshGateway"]


def test_failure_stops_the_component_and_is_left_to_the_caller_to_log(
    cluster: FakeCluster,
    caplog: pytest.LogCaptureFixture,
) -> None:
    cluster.fail("create", ClusterClientError("forbidden", status_code=403))
    component = EgressGatewayReconciler(
        reconciler=Reconciler(client=cluster),
        config=_config(multi_mesh=True),
    )

    with caplog.at_level(logging.INFO, logger="meshreconcile.resources.egressgateway"):
        outcomes = component.reconcile()

    assert len(outcomes) == 1
    assert outcomes[0].error is not None
    assert outcomes[0].error.kind == MESH_GATEWAY_KIND
    assert "Reconciling component=egressgateway" in caplog.text
    assert not [record for record in caplog.records if record.levelno >= logging.ERROR]
    assert "Reconciled component=egressgateway" not in caplog.text
