"""Tests for org policy parsing, validation and merging."""

import pytest

from governance.core.errors import InvalidPolicyRule
from governance.core.org_policy import (
    Condition,
    OrgPolicy,
    PolicyValues,
    Rule,
    merge_org_policies,
    parse_org_policies,
    parse_org_policy,
    validate_rule,
)


def test_parse_policy_with_conditions():
    policy = parse_org_policy(
        "iam.allowedPolicyMemberDomains",
        {
            "inherit_from_parent": False,
            "rules": [
                {"allow": {"values": ["C0xxxxxxx"]}},
                {
                    "allow": {"all": True},
                    "condition": {
                        "expression": "resource.matchTag('1234567890/env', 'dev')",
                        "title": "dev",
                    },
                },
            ],
        },
    )

    assert policy == OrgPolicy(
        name="iam.allowedPolicyMemberDomains",
        inherit_from_parent=False,
        rules=(
            Rule(allow=PolicyValues(values=("C0xxxxxxx",))),
            Rule(
                allow=PolicyValues(all=True),
                condition=Condition(
                    expression="resource.matchTag('1234567890/env', 'dev')", title="dev"
                ),
            ),
        ),
    )


def test_parse_reset_policy_without_rules():
    policies = parse_org_policies({"compute.vmExternalIpAccess": {"reset": True}})

    assert policies["compute.vmExternalIpAccess"] == OrgPolicy(
        name="compute.vmExternalIpAccess", reset=True
    )


@pytest.mark.parametrize("data", [
    ["not", "a", "mapping"],
    {"rules": {"enforce": True}},
    {"rules": ["enforce"]},
    {"rules": [{"enforce": True, "condition": {"title": "no expression"}}]},
    {"rules": [{"deny": ["values"]}]},
])
def test_parse_rejects_malformed_shapes(data):
    with pytest.raises(InvalidPolicyRule) as exc_info:
        parse_org_policy("compute.requireOsLogin", data)

    assert exc_info.value.key == "compute.requireOsLogin"


@pytest.mark.parametrize("rule", [
    Rule(enforce=True, allow=PolicyValues(all=True)),
    Rule(allow=PolicyValues(all=True), deny=PolicyValues(values=("x",))),
    Rule(),
    Rule(allow=PolicyValues()),
    Rule(deny=PolicyValues()),
    Rule(deny=PolicyValues(all=True, values=("x",))),
])
def test_invalid_rules(rule):
    with pytest.raises(InvalidPolicyRule):
        validate_rule("constraints/test", rule)


@pytest.mark.parametrize("rule", [
    Rule(enforce=False),
    Rule(allow=PolicyValues(all=True)),
    Rule(deny=PolicyValues(values=("in:us-locations",))),
    Rule(enforce=True, condition=Condition(expression="true")),
])
def test_valid_rules(rule):
    validate_rule("constraints/test", rule)


def test_inline_policy_replaces_file_policy():
    from_files = {
        "A": OrgPolicy("A", rules=(Rule(enforce=True),)),
        "B": OrgPolicy("B", inherit_from_parent=True, rules=(Rule(deny=PolicyValues(all=True)),)),
    }
    inline = {"A": OrgPolicy("A", rules=(Rule(allow=PolicyValues(values=("x", "y"))),))}

    merged = merge_org_policies(inline, from_files)

    assert merged["A"] is inline["A"]
    assert merged["B"] is from_files["B"]
    assert list(merged) == ["A", "B"]


def test_replacement_is_whole_object():
    from_files = {"A": OrgPolicy("A", inherit_from_parent=True, rules=(Rule(enforce=True),))}
    inline = {"A": OrgPolicy("A", reset=True)}

    merged = merge_org_policies(inline, from_files)

    assert merged["A"].inherit_from_parent is None
    assert merged["A"].rules == ()


def test_merge_does_not_touch_inputs():
    from_files = {"A": OrgPolicy("A", rules=(Rule(enforce=True),))}
    inline = {"B": OrgPolicy("B", rules=(Rule(enforce=False),))}

    merge_org_policies(inline, from_files)

    assert list(from_files) == ["A"]
    assert list(inline) == ["B"]


def test_merge_validates_effective_policies():
    with pytest.raises(InvalidPolicyRule):
        merge_org_policies({"A": OrgPolicy("A", rules=(Rule(),))}, None)

    with pytest.raises(InvalidPolicyRule):
        merge_org_policies(None, {"A": OrgPolicy("A", reset=True, rules=(Rule(enforce=True),))})


def test_merge_skips_replaced_file_policies():
    from_files = {"A": OrgPolicy("A", rules=(Rule(),))}
    inline = {"A": OrgPolicy("A", rules=(Rule(enforce=True),))}

    assert merge_org_policies(inline, from_files) == inline


def test_merge_of_nothing():
    assert merge_org_policies(None, None) == {}
