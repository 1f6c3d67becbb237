from __future__ import annotations

import pytest

from meshreconcile.domain.document import ResourceDocument
from meshreconcile.domain.errors import IdentityMismatchError, SerializeError
from meshreconcile.domain.matching import (
    DEFAULT_MATCH_RULES,
    MatchRules,
    MatchVerdict,
    SemanticMatcher,
    match,
    scalars_equal,
    values_equal,
)
from meshreconcile.domain.paths import FieldPath
from meshreconcile.domain.reconciler import build_update
from tests.support.cluster import CONFIG_MAP, CORE_SERVICE, make_document


def _service(spec: dict[str, object], **extra: object) -> ResourceDocument:
    return make_document(CORE_SERVICE, "istio-egressgateway", spec=spec, **extra)


def _paths(verdict: MatchVerdict) -> list[str]:
    return [str(path) for path in verdict.sorted_paths()]


def test_identical_documents_are_equal() -> None:
    desired = _service({"type": "ClusterIP", "ports": [{"name": "http", "port": 80}]})

    verdict = match(desired, desired)

    assert verdict.equal
    assert verdict.diff_paths == frozenset()


def test_live_only_fields_are_ignored() -> None:
    desired = _service({"ports": [{"name": "http", "port": 80}]})
    live = _service(
        {
            "ports": [{"name": "http", "port": 80, "targetPort": 80, "protocol": "TCP"}],
            "clusterIP": "10.0.0.12",
            "sessionAffinity": "None",
        },
        status={"loadBalancer": {}},
    )

    assert match(live, desired).equal


def test_extra_live_sequence_elements_are_ignored() -> None:
    desired = _service({"ports": [{"name": "http", "port": 80}]})
    live = _service({"ports": [{"name": "http", "port": 80}, {"name": "tls", "port": 443}]})

    assert match(live, desired).equal


def test_changed_value_is_reported_at_its_path() -> None:
    desired = _service({"type": "LoadBalancer", "ports": [{"name": "http", "port": 80}]})
    live = _service({"type": "ClusterIP", "ports": [{"name": "http", "port": 8080}]})

    verdict = match(live, desired)

    assert not verdict.equal
    assert _paths(verdict) == ["spec.ports[0].port", "spec.type"]


def test_missing_field_and_shorter_sequence_are_reported() -> None:
    desired = _service({"selector": {"app": "egress"}, "ports": [{"port": 80}, {"port": 443}]})
    live = _service({"ports": [{"port": 80}]})

    assert _paths(match(live, desired)) == ["spec.ports[1]", "spec.selector"]


def test_matching_is_asymmetric() -> None:
    small = _service({"type": "ClusterIP"})
    large = _service({"type": "ClusterIP", "clusterIP": "10.0.0.1"})

    assert match(large, small).equal
    assert _paths(match(small, large)) == ["spec.clusterIP"]


def test_type_mismatch_is_a_difference() -> None:
    desired = _service({"ports": [{"port": 80}]})
    live = _service({"ports": {"port": 80}})

    assert _paths(match(live, desired)) == ["spec.ports"]


def test_numbers_compare_numerically_but_booleans_only_with_booleans() -> None:
    assert scalars_equal(1, 1.0)
    assert not scalars_equal(True, 1)
    assert not scalars_equal(0, False)
    assert not scalars_equal("1", 1)
    assert values_equal({"a": [1, 2.0]}, {"a": [1.0, 2]})
    assert not values_equal({"a": [1]}, {"a": [1, 2]})

    desired = _service({"replicas": 2, "publishNotReadyAddresses": True})
    live = _service({"replicas": 2.0, "publishNotReadyAddresses": 1})

    assert _paths(match(live, desired)) == ["spec.publishNotReadyAddresses"]


def test_null_in_desired_matches_an_absent_field() -> None:
    desired = _service({"loadBalancerIP": None, "type": "ClusterIP"})
    live = _service({"type": "ClusterIP"})

    assert match(live, desired).equal


def test_server_managed_metadata_is_never_compared() -> None:
    desired = make_document(
        CONFIG_MAP,
        "mesh",
        data={"mesh": "x"},
        status={"phase": "Pending"},
    )
    desired_body = desired.to_body()
    desired_body["metadata"]["resourceVersion"] = "1"
    desired_body["metadata"]["uid"] = "desired-uid"
    live = make_document(CONFIG_MAP, "mesh", data={"mesh": "x"}, status={"phase": "Ready"})
    live_body = live.to_body()
    live_body["metadata"].update({"resourceVersion": "99", "uid": "live-uid"})

    verdict = match(
        ResourceDocument(kind=CONFIG_MAP, body=live_body),
        ResourceDocument(kind=CONFIG_MAP, body=desired_body),
    )

    assert verdict.equal


def test_ignore_adds_patterns() -> None:
    rules = DEFAULT_MATCH_RULES.ignore("spec.clusterIP", "metadata.annotations")
    desired = _service({"clusterIP": "10.0.0.1"})
    live = _service({"clusterIP": "10.0.0.2"})

    assert not match(live, desired).equal
    assert match(live, desired, rules=rules).equal


def test_registered_default_suppresses_only_its_own_value_and_kind() -> None:
    rules = DEFAULT_MATCH_RULES.register_default(CORE_SERVICE, "spec.ports[*].protocol", "TCP")
    live = _service({"ports": [{"name": "http", "port": 80}]})
    tcp = _service({"ports": [{"name": "http", "port": 80, "protocol": "TCP"}]})
    udp = _service({"ports": [{"name": "http", "port": 80, "protocol": "UDP"}]})

    assert match(live, tcp, rules=rules).equal
    assert _paths(match(live, udp, rules=rules)) == ["spec.ports[0].protocol"]
    assert _paths(match(live, tcp)) == ["spec.ports[0].protocol"]

    other_kind = DEFAULT_MATCH_RULES.register_default(CONFIG_MAP, "spec.ports[*].protocol", "TCP")
    assert _paths(match(live, tcp, rules=other_kind)) == ["spec.ports[0].protocol"]


def test_wildcard_default_across_positional_elements_and_the_resulting_update() -> None:
    rules = DEFAULT_MATCH_RULES.register_default(CORE_SERVICE, "spec.ports[*].protocol", "TCP")
    live = _service({"ports": [{"name": "http", "port": 80}]})
    desired = _service(
        {
            "ports": [
                {"name": "http", "port": 80, "protocol": "TCP"},
                {"name": "https", "port": 443, "protocol": "TCP"},
            ]
        }
    )

    verdict = match(live, desired, rules=rules)

    assert _paths(verdict) == ["spec.ports[1]"]
    assert build_update(live, desired, verdict).body["spec"]["ports"] == [
        {"name": "http", "port": 80},
        {"name": "https", "port": 443, "protocol": "TCP"},
    ]


def test_rules_are_immutable() -> None:
    extended = DEFAULT_MATCH_RULES.register_merge_key(CORE_SERVICE, "spec.ports", "name")

    assert extended is not DEFAULT_MATCH_RULES
    assert DEFAULT_MATCH_RULES.merge_keys == ()
    assert MatchRules().merge_key_for(CORE_SERVICE, FieldPath.parse("spec.ports")) is None
    assert extended.merge_key_for(CORE_SERVICE, FieldPath.parse("spec.ports")) == "name"


class TestMergeKeySequences:
    rules = DEFAULT_MATCH_RULES.register_merge_key(CORE_SERVICE, "spec.ports", "name")

    def test_reordered_elements_match(self) -> None:
        desired = _service({"ports": [{"name": "http", "port": 80}, {"name": "tls", "port": 443}]})
        live = _service({"ports": [{"name": "tls", "port": 443}, {"name": "http", "port": 80}]})

        assert not match(live, desired).equal
        assert match(live, desired, rules=self.rules).equal

    def test_missing_element_is_reported_at_its_selector(self) -> None:
        desired = _service({"ports": [{"name": "http", "port": 80}, {"name": "tls", "port": 443}]})
        live = _service({"ports": [{"name": "http", "port": 80}]})

        verdict = match(live, desired, rules=self.rules)

        assert _paths(verdict) == ["spec.ports[name=tls]"]

    def test_changed_element_field_is_reported_through_the_selector(self) -> None:
        desired = _service({"ports": [{"name": "tls", "port": 443}]})
        live = _service({"ports": [{"name": "http", "port": 80}, {"name": "tls", "port": 8443}]})

        verdict = match(live, desired, rules=self.rules)

        assert _paths(verdict) == ["spec.ports[name=tls].port"]

    def test_element_without_merge_key_is_malformed(self) -> None:
        desired = _service({"ports": [{"port": 80}]})
        live = _service({"ports": []})

        with pytest.raises(SerializeError, match=r"spec\.ports\[0\]"):
            match(live, desired, rules=self.rules)

    def test_duplicate_merge_key_is_malformed(self) -> None:
        desired = _service({"ports": [{"name": "http", "port": 80}, {"name": "http", "port": 81}]})
        live = _service({"ports": []})

        with pytest.raises(SerializeError, match="Duplicate merge key"):
            match(live, desired, rules=self.rules)

    def test_non_scalar_merge_key_is_malformed(self) -> None:
        desired = _service({"ports": [{"name": {"nested": True}, "port": 80}]})
        live = _service({"ports": []})

        with pytest.raises(SerializeError, match="must be a scalar"):
            match(live, desired, rules=self.rules)


def test_malformed_documents_raise_instead_of_returning_a_verdict() -> None:
    desired = _service({"ports": [{1: "numeric key"}]})
    live = _service({"ports": []})

    with pytest.raises(SerializeError):
        match(live, desired)


def test_identity_mismatch_is_rejected() -> None:
    desired = _service({})
    other_name = make_document(CORE_SERVICE, "istio-ingressgateway", spec={})
    other_kind = make_document(CONFIG_MAP, "istio-egressgateway", spec={})

    with pytest.raises(IdentityMismatchError):
        SemanticMatcher().match(other_name, desired)
    with pytest.raises(IdentityMismatchError):
        SemanticMatcher().match(other_kind, desired)
