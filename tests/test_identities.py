"""Tests for the service identity registry and shortcode resolution."""

import pytest

from governance.core.bindings import Binding, BindingSource, DependencyEdge
from governance.core.errors import InvalidPrincipal, UnknownShortcode
from governance.core.identities import (
    SERVICE_IDENTITIES,
    PrincipalRef,
    ServiceIdentity,
    ServiceIdentityRegistry,
    resolve_bindings,
    resolve_policy,
)


def test_table_has_unique_keys():
    for attr in ("service", "shortcode", "api"):
        values = [getattr(identity, attr) for identity in SERVICE_IDENTITIES]
        assert len(values) == len(set(values)), attr


def test_register_is_idempotent():
    registry = ServiceIdentityRegistry()

    first = registry.register("container")
    second = registry.register("container.googleapis.com")

    assert first is second
    assert registry.registered() == (first,)


def test_register_unknown_service():
    with pytest.raises(UnknownShortcode) as exc_info:
        ServiceIdentityRegistry().register("nosuchservice.googleapis.com")

    assert exc_info.value.key == "nosuchservice.googleapis.com"


def test_resolve_returns_a_deferred_reference():
    ref = ServiceIdentityRegistry().resolve("container-engine")

    assert isinstance(ref, PrincipalRef)
    assert ref.service == "container"
    assert ref.render(123456789) == (
        "serviceAccount:service-123456789@container-engine-robot.iam.gserviceaccount.com"
    )


def test_resolving_twice_yields_same_reference_and_one_identity():
    registry = ServiceIdentityRegistry()

    assert registry.resolve("cloudservices") == registry.resolve("cloudservices")
    assert [i.shortcode for i in registry.registered()] == ["cloudservices"]
    assert [i.shortcode for i in registry.eager_identities()] == ["cloudservices"]


def test_resolve_unknown_shortcode():
    with pytest.raises(UnknownShortcode):
        ServiceIdentityRegistry().resolve("not-a-robot")


def test_custom_table():
    table = [ServiceIdentity("widgets", "widget-bot", "widgets.googleapis.com",
                             "service-{number}@widgets.iam.gserviceaccount.com", eager=True)]
    registry = ServiceIdentityRegistry(table=table)

    assert registry.resolve("widget-bot").template.startswith("service-{number}")
    with pytest.raises(UnknownShortcode):
        registry.resolve("cloudservices")


def test_materialize_checks_the_project_number():
    registry = ServiceIdentityRegistry(project_number=123456789)

    principal = "serviceAccount:service-123456789@gcp-sa-pubsub.iam.gserviceaccount.com"
    assert registry.materialize("pubsub", principal) == principal

    with pytest.raises(InvalidPrincipal):
        registry.materialize(
            "pubsub", "serviceAccount:service-987654321@gcp-sa-pubsub.iam.gserviceaccount.com"
        )
    with pytest.raises(InvalidPrincipal):
        registry.materialize("pubsub", "user:someone@example.com")


def test_materialize_matches_the_whole_project_number():
    registry = ServiceIdentityRegistry(project_number=12)

    with pytest.raises(InvalidPrincipal):
        registry.materialize("cloudservices", "serviceAccount:123@cloudservices.gserviceaccount.com")
    with pytest.raises(InvalidPrincipal):
        registry.materialize("cloudservices", "serviceAccount:512@cloudservices.gserviceaccount.com")

    principal = "serviceAccount:12@cloudservices.gserviceaccount.com"
    assert registry.materialize("cloudservices", principal) == principal


def test_discovery_lists_resolvable_identities_only():
    unknown_number = ServiceIdentityRegistry()
    unknown_number.resolve("compute")
    unknown_number.materialize(
        "pubsub", "serviceAccount:service-42@gcp-sa-pubsub.iam.gserviceaccount.com"
    )

    assert unknown_number.discovery() == {
        "pubsub": "serviceAccount:service-42@gcp-sa-pubsub.iam.gserviceaccount.com",
    }

    known_number = ServiceIdentityRegistry(project_number="42")
    known_number.resolve("compute")

    assert known_number.discovery() == {
        "compute": "serviceAccount:42-compute@developer.gserviceaccount.com",
    }


def test_resolve_bindings_rewrites_shortcodes_and_records_edges():
    registry = ServiceIdentityRegistry()
    bindings = [
        Binding("roles/editor", "cloudservices", BindingSource.ROLE_ADDITIVE),
        Binding("roles/container.hostServiceAgentUser", "container-engine", BindingSource.ROLE_ADDITIVE),
        Binding("roles/viewer", "user:a@example.com", BindingSource.ROLE_AUTHORITATIVE),
    ]

    resolved, edges = resolve_bindings(bindings, registry)

    cloudservices = registry.resolve("cloudservices")
    assert resolved[0] == Binding("roles/editor", cloudservices, BindingSource.ROLE_ADDITIVE)
    assert isinstance(resolved[1].member, PrincipalRef)
    assert resolved[2] == bindings[2]
    # container-engine is created with the API, only cloudservices needs an edge
    assert edges == (DependencyEdge("roles/editor", cloudservices, "cloudservices"),)


def test_resolve_bindings_names_role_of_unknown_shortcode():
    bindings = [Binding("roles/viewer", "mystery", BindingSource.ROLE_AUTHORITATIVE)]

    with pytest.raises(UnknownShortcode) as exc_info:
        resolve_bindings(bindings, ServiceIdentityRegistry())

    assert exc_info.value.key == "mystery"
    assert "roles/viewer" in str(exc_info.value)


def test_resolve_policy():
    registry = ServiceIdentityRegistry()

    policy, edges = resolve_policy(
        {"roles/pubsub.publisher": ["pubsub", "user:a@example.com"]}, registry
    )

    assert policy["roles/pubsub.publisher"][1] == "user:a@example.com"
    assert policy["roles/pubsub.publisher"][0] == registry.resolve("pubsub")
    assert [edge.service for edge in edges] == ["pubsub"]
