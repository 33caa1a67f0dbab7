"""Organization policy values, validation and merging.

Policies come from two places: inline stack configuration and YAML files in
the org policy data directory. Both are parsed into the same OrgPolicy shape
and merged per constraint name, with inline policies replacing file-loaded
ones as a whole (rules are never merged field by field).

Example (YAML or inline config):
    iam.disableServiceAccountKeyCreation:
      rules:
        - enforce: true
    iam.allowedPolicyMemberDomains:
      inherit_from_parent: false
      rules:
        - allow:
            values: ["C0xxxxxxx", "C0yyyyyyy"]
        - allow:
            all: true
          condition:
            expression: resource.matchTag('1234567890/env', 'dev')
            title: dev
"""

from dataclasses import dataclass
from typing import Any, Mapping

import pulumi

from .errors import InvalidPolicyRule


@dataclass(frozen=True)
class Condition:
    expression: str
    title: str | None = None
    description: str | None = None
    location: str | None = None


@dataclass(frozen=True)
class PolicyValues:
    """Body of an allow or deny rule: either all, or a list of values."""

    all: bool | None = None
    values: tuple[str, ...] = ()


@dataclass(frozen=True)
class Rule:
    enforce: bool | None = None
    allow: PolicyValues | None = None
    deny: PolicyValues | None = None
    condition: Condition | None = None


@dataclass(frozen=True)
class OrgPolicy:
    name: str
    inherit_from_parent: bool | None = None
    reset: bool | None = None
    rules: tuple[Rule, ...] = ()


def _parse_values(name: str, kind: str, data: Any) -> PolicyValues:
    if not isinstance(data, Mapping):
        raise InvalidPolicyRule(f"Policy '{name}': '{kind}' must be a mapping", key=name)

    values = data.get("values") or ()
    if isinstance(values, str):
        values = (values,)
    return PolicyValues(all=data.get("all"), values=tuple(values))


def _parse_rule(name: str, data: Any) -> Rule:
    if not isinstance(data, Mapping):
        raise InvalidPolicyRule(f"Policy '{name}': every rule must be a mapping", key=name)

    condition = data.get("condition")
    if condition is not None:
        if not isinstance(condition, Mapping) or not condition.get("expression"):
            raise InvalidPolicyRule(
                f"Policy '{name}': a rule condition needs an 'expression'", key=name
            )
        condition = Condition(
            expression=condition["expression"],
            title=condition.get("title"),
            description=condition.get("description"),
            location=condition.get("location"),
        )

    allow = data.get("allow")
    deny = data.get("deny")
    return Rule(
        enforce=data.get("enforce"),
        allow=None if allow is None else _parse_values(name, "allow", allow),
        deny=None if deny is None else _parse_values(name, "deny", deny),
        condition=condition,
    )


def parse_org_policy(name: str, data: Any) -> OrgPolicy:
    """Build an OrgPolicy from its config/YAML mapping.

    Raises:
        InvalidPolicyRule: The policy or one of its rules is not a mapping
    """
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise InvalidPolicyRule(f"Policy '{name}' must be a mapping", key=name)

    rules = data.get("rules") or []
    if not isinstance(rules, list):
        raise InvalidPolicyRule(f"Policy '{name}': 'rules' must be a list", key=name)

    return OrgPolicy(
        name=name,
        inherit_from_parent=data.get("inherit_from_parent"),
        reset=data.get("reset"),
        rules=tuple(_parse_rule(name, rule) for rule in rules),
    )


def parse_org_policies(raw: Mapping[str, Any] | None) -> dict[str, OrgPolicy]:
    return {name: parse_org_policy(name, data) for name, data in (raw or {}).items()}


def _validate_values(name: str, kind: str, values: PolicyValues) -> None:
    if values.all is None and not values.values:
        raise InvalidPolicyRule(
            f"Policy '{name}': '{kind}' needs either 'all' or 'values'", key=name
        )
    if values.all is not None and values.values:
        raise InvalidPolicyRule(
            f"Policy '{name}': '{kind}' cannot set both 'all' and 'values'", key=name
        )


def validate_rule(name: str, rule: Rule) -> None:
    """Check that a rule sets exactly one of enforce, allow or deny.

    Raises:
        InvalidPolicyRule: The rule shape is not accepted by the Org Policy API
    """
    kinds = [
        kind
        for kind, value in (("enforce", rule.enforce), ("allow", rule.allow), ("deny", rule.deny))
        if value is not None
    ]
    if len(kinds) > 1:
        raise InvalidPolicyRule(
            f"Policy '{name}': a rule can only set one of enforce/allow/deny, got {', '.join(kinds)}",
            key=name,
        )
    if not kinds:
        raise InvalidPolicyRule(
            f"Policy '{name}': a rule must set one of enforce/allow/deny", key=name
        )

    if rule.allow is not None:
        _validate_values(name, "allow", rule.allow)
    if rule.deny is not None:
        _validate_values(name, "deny", rule.deny)


def validate_policy(policy: OrgPolicy) -> None:
    if policy.reset and policy.rules:
        raise InvalidPolicyRule(
            f"Policy '{policy.name}': 'reset' cannot be combined with rules", key=policy.name
        )
    for rule in policy.rules:
        validate_rule(policy.name, rule)


def merge_org_policies(
    inline: Mapping[str, OrgPolicy] | None,
    from_files: Mapping[str, OrgPolicy] | None,
) -> dict[str, OrgPolicy]:
    """Merge inline and file-loaded policies by constraint name.

    Inline policies replace file-loaded ones with the same name. Policies
    only present in the files pass through unchanged. Only the effective
    policies are validated.

    Args:
        inline: Policies from stack configuration
        from_files: Policies loaded from the data directory

    Returns:
        New dict of effective policies, sorted by constraint name

    Raises:
        InvalidPolicyRule: An effective policy is malformed
    """
    merged = {**(from_files or {}), **(inline or {})}

    overridden = sorted(set(inline or {}) & set(from_files or {}))
    if overridden:
        pulumi.log.debug(f"Inline org policies override file policies: {', '.join(overridden)}")

    for policy in merged.values():
        validate_policy(policy)

    return {name: merged[name] for name in sorted(merged)}
