"""GCP Organization Policy resources.

Creates one project-level gcp.orgpolicy.Policy per effective constraint
after inline and file-loaded policies have been merged.
"""

import pulumi
import pulumi_gcp as gcp

from ..core.org_policy import OrgPolicy, Rule


def _bool_string(value: bool) -> str:
    # The Org Policy v2 API takes booleans as "TRUE"/"FALSE" strings
    return "TRUE" if value else "FALSE"


def _rule_args(rule: Rule) -> gcp.orgpolicy.PolicySpecRuleArgs:
    kwargs = {}

    if rule.enforce is not None:
        kwargs["enforce"] = _bool_string(rule.enforce)

    if rule.allow is not None:
        if rule.allow.all is not None:
            kwargs["allow_all"] = _bool_string(rule.allow.all)
        else:
            kwargs["values"] = gcp.orgpolicy.PolicySpecRuleValuesArgs(
                allowed_values=list(rule.allow.values),
            )

    if rule.deny is not None:
        if rule.deny.all is not None:
            kwargs["deny_all"] = _bool_string(rule.deny.all)
        else:
            kwargs["values"] = gcp.orgpolicy.PolicySpecRuleValuesArgs(
                denied_values=list(rule.deny.values),
            )

    if rule.condition is not None:
        kwargs["condition"] = gcp.orgpolicy.PolicySpecRuleConditionArgs(
            expression=rule.condition.expression,
            title=rule.condition.title,
            description=rule.condition.description,
            location=rule.condition.location,
        )

    return gcp.orgpolicy.PolicySpecRuleArgs(**kwargs)


def create_org_policies(
    gcp_project: str,
    policies: dict[str, OrgPolicy],
    protect: bool = False,
) -> dict[str, gcp.orgpolicy.Policy]:
    """Create organization policy overrides for the project.

    Args:
        gcp_project: Project id
        policies: Effective policies keyed by constraint name
        protect: Protect resources from deletion

    Returns:
        Dictionary of constraint name to policy resource
    """
    created = {}

    for name, policy in policies.items():
        # Pulumi resource names cannot contain dots
        resource_name = f"org-policy-{name.replace('.', '-')}"

        created[name] = gcp.orgpolicy.Policy(
            resource_name,
            name=f"projects/{gcp_project}/policies/{name}",
            parent=f"projects/{gcp_project}",
            spec=gcp.orgpolicy.PolicySpecArgs(
                inherit_from_parent=policy.inherit_from_parent,
                reset=policy.reset,
                rules=[_rule_args(rule) for rule in policy.rules],
            ),
            opts=pulumi.ResourceOptions(protect=protect),
        )

    if created:
        pulumi.log.info(f"Created {len(created)} org policies for project {gcp_project}")

    return created
