"""Project governance: IAM, org policies and service identities.

Example configuration in Pulumi.{stack}.yaml:
    config:
      project-governance:gcp_project: "my-project"
      project-governance:services:
        - container.googleapis.com
        - pubsub.googleapis.com
      project-governance:iam:
        roles/viewer: ["group:readers@example.com"]
      project-governance:group_iam:
        admins@example.com: ["roles/owner"]
      project-governance:iam_additive:
        roles/container.hostServiceAgentUser: ["container-engine"]
      project-governance:iam_additive_members:
        "user:ops@example.com": ["roles/logging.viewer"]
      project-governance:org_policies:
        compute.disableSerialPortAccess:
          rules:
            - enforce: true

iam_policy may be used instead of iam, group_iam, iam_additive and
iam_additive_members, never together with them.
"""

from pathlib import Path
from typing import Any

import pulumi
import pulumi_gcp as gcp

from .core.bindings import IamInputs, sorted_members
from .core.identities import ServiceIdentityRegistry
from .core.org_policy import parse_org_policies
from .core.reconcile import ReconciliationResult, reconcile
from .provisioning import (
    create_iam_resources,
    create_org_policies,
    create_service_identities,
    load_org_policy_files,
    service_identity_discovery,
)


# Org policy YAML files are read from here unless org_policies_data_path is set
DEFAULT_ORG_POLICIES_PATH = Path(__file__).parent.parent / "org-policies"


def _read_iam_inputs(config: pulumi.Config) -> IamInputs:
    return IamInputs(
        iam=config.get_object("iam") or {},
        group_iam=config.get_object("group_iam") or {},
        iam_additive=config.get_object("iam_additive") or {},
        iam_additive_members=config.get_object("iam_additive_members") or {},
        iam_policy=config.get_object("iam_policy"),
    )


def reconcile_from_config(config: pulumi.Config) -> ReconciliationResult:
    """Run a reconciliation pass over the stack configuration.

    Args:
        config: Pulumi configuration object

    Returns:
        ReconciliationResult for the stack
    """
    data_path = config.get("org_policies_data_path") or DEFAULT_ORG_POLICIES_PATH

    return reconcile(
        _read_iam_inputs(config),
        inline_policies=parse_org_policies(config.get_object("org_policies")),
        file_policies=parse_org_policies(load_org_policy_files(data_path)),
        registry=ServiceIdentityRegistry(),
        services=config.get_object("services") or [],
    )


def provision_governance(
    gcp_project: str,
    result: ReconciliationResult,
    protect: bool = False,
) -> dict[str, Any]:
    """Create the Pulumi resources for a reconciliation result.

    Returns:
        Dictionary with keys:
        - service_identities: service -> ServiceIdentity
        - iam: resources from create_iam_resources
        - org_policies: constraint name -> Policy
        - discovery: Output of shortcode -> principal
    """
    project_number = gcp.organizations.get_project_output(project_id=gcp_project).number

    service_identities = create_service_identities(gcp_project, result, protect=protect)
    iam = create_iam_resources(
        gcp_project, result, project_number, service_identities, protect=protect
    )
    org_policies = create_org_policies(gcp_project, result.org_policies, protect=protect)

    return {
        "service_identities": service_identities,
        "iam": iam,
        "org_policies": org_policies,
        "discovery": service_identity_discovery(result, project_number, service_identities),
    }


def create_project_governance(config: pulumi.Config) -> dict[str, Any]:
    """Reconcile and create IAM, org policy and service identity resources.

    Args:
        config: Pulumi configuration object containing:
            - gcp_project (required): Project id
            - iam, group_iam, iam_additive, iam_additive_members, iam_policy (optional)
            - services (optional): APIs whose service identities are registered
            - org_policies (optional): Inline org policies
            - org_policies_data_path (optional): Directory of org policy YAML files

    Returns:
        Dictionary of created resources plus:
        - dependencies: list of {role, member, service} identity dependencies
        - org_policy_names: effective constraint names
    """
    stack = pulumi.get_stack()
    is_production = stack in ["production", "prod"]

    gcp_project = config.require("gcp_project")

    result = reconcile_from_config(config)

    plan = result.bindings
    if plan.full_policy is None and not plan.authoritative and not plan.additive:
        pulumi.log.warn(f"No IAM bindings configured for project {gcp_project}")

    resources = provision_governance(gcp_project, result, protect=is_production)

    resources["dependencies"] = [
        {"role": edge.role, "member": str(edge.member), "service": edge.service}
        for edge in result.dependencies
    ]
    resources["org_policy_names"] = list(result.org_policies)
    resources["authoritative_roles"] = {
        role: [str(m) for m in sorted_members(members)]
        for role, members in result.bindings.authoritative.items()
    }
    return resources
