"""Project IAM and service identity resources.

Turns a reconciled BindingPlan into pulumi_gcp resources:
- gcp.projects.ServiceIdentity for identities that need eager creation
- gcp.projects.IAMBinding per authoritative role (absent members are revoked)
- gcp.projects.IAMMember per additive (role, member) pair
- gcp.projects.IAMPolicy when iam_policy owns the whole project policy

Shortcode members arrive as PrincipalRef objects and are rendered here once
the project number is known. Bindings that depend on an eagerly created
identity wait for it through depends_on.
"""

import hashlib
import re

import pulumi
import pulumi_gcp as gcp

from ..core.bindings import sorted_members
from ..core.identities import PrincipalRef, ServiceIdentityRegistry
from ..core.reconcile import ReconciliationResult


def _slug(value) -> str:
    if isinstance(value, PrincipalRef):
        value = value.shortcode
    return re.sub(r"[^a-z0-9]+", "-", str(value).lower()).strip("-")


def _resource_name(prefix: str, *parts) -> str:
    # Slugs are lossy, the digest of the exact values keeps names unique
    digest = hashlib.sha1("\n".join(str(part) for part in parts).encode()).hexdigest()[:8]
    return "-".join([prefix, *(_slug(part) for part in parts), digest])


def _render_member(member, project_number: pulumi.Output):
    if isinstance(member, PrincipalRef):
        return project_number.apply(member.render)
    return member


def create_service_identities(
    gcp_project: str,
    result: ReconciliationResult,
    protect: bool = False,
) -> dict[str, gcp.projects.ServiceIdentity]:
    """Create the service identities that must exist before their bindings.

    Returns:
        Dictionary of service name to ServiceIdentity resource
    """
    created = {}

    for identity in result.eager_identities:
        created[identity.service] = gcp.projects.ServiceIdentity(
            f"service-identity-{identity.shortcode}",
            project=gcp_project,
            service=identity.api,
            opts=pulumi.ResourceOptions(protect=protect),
        )

    if created:
        pulumi.log.info(f"Creating {len(created)} service identities for project {gcp_project}")

    return created


def create_iam_resources(
    gcp_project: str,
    result: ReconciliationResult,
    project_number: pulumi.Output,
    service_identities: dict[str, gcp.projects.ServiceIdentity],
    protect: bool = False,
) -> dict:
    """Create IAM resources for a reconciled binding plan.

    Args:
        gcp_project: Project id
        result: Output of a reconciliation pass
        project_number: Project number, used to render service identity members
        service_identities: Resources returned by create_service_identities
        protect: Protect resources from deletion

    Returns:
        Dictionary with keys:
        - bindings: role -> IAMBinding (authoritative roles)
        - members: list of IAMMember (additive bindings)
        - policy: IAMPolicy or None
    """
    plan = result.bindings

    def depends_on(role, member=None):
        return [
            service_identities[edge.service]
            for edge in plan.dependencies
            if edge.role == role
            and (member is None or edge.member == member)
            and edge.service in service_identities
        ]

    if plan.full_policy is not None:
        policy_data = gcp.organizations.get_iam_policy_output(
            bindings=[
                gcp.organizations.GetIAMPolicyBindingArgs(
                    role=role,
                    members=[_render_member(m, project_number) for m in members],
                )
                for role, members in plan.full_policy.items()
            ],
        ).policy_data

        # iam_policy replaces every binding on the project
        policy = gcp.projects.IAMPolicy(
            "iam-policy",
            project=gcp_project,
            policy_data=policy_data,
            opts=pulumi.ResourceOptions(
                protect=protect,
                depends_on=list(service_identities.values()),
            ),
        )
        pulumi.log.info(f"Applying authoritative IAM policy with {len(plan.full_policy)} roles")
        return {"bindings": {}, "members": [], "policy": policy}

    bindings = {}
    for role, members in plan.authoritative.items():
        bindings[role] = gcp.projects.IAMBinding(
            _resource_name("iam", role),
            project=gcp_project,
            role=role,
            members=[_render_member(m, project_number) for m in sorted_members(members)],
            opts=pulumi.ResourceOptions(protect=protect, depends_on=depends_on(role)),
        )

    iam_members = []
    for role, member in sorted(plan.additive, key=lambda pair: (pair[0], str(pair[1]))):
        iam_members.append(gcp.projects.IAMMember(
            _resource_name("iam-additive", role, member),
            project=gcp_project,
            role=role,
            member=_render_member(member, project_number),
            opts=pulumi.ResourceOptions(protect=protect, depends_on=depends_on(role, member)),
        ))

    pulumi.log.info(
        f"Created {len(bindings)} authoritative role bindings and "
        f"{len(iam_members)} additive bindings"
    )

    return {"bindings": bindings, "members": iam_members, "policy": None}


def service_identity_discovery(
    result: ReconciliationResult,
    project_number: pulumi.Output,
    service_identities: dict[str, gcp.projects.ServiceIdentity],
) -> pulumi.Output:
    """shortcode -> principal for every identity used by the project.

    Emails of eagerly created identities are checked against the project
    number before they are exported.
    """
    shortcodes = {identity.service: identity.shortcode for identity in result.identities}
    emails = {
        shortcodes[service]: resource.email
        for service, resource in service_identities.items()
    }

    def discover(values: dict) -> dict[str, str]:
        registry = ServiceIdentityRegistry(project_number=values.pop("_project_number"))
        for identity in result.identities:
            registry.register(identity.service)
        for shortcode, email in values.items():
            registry.materialize(shortcode, f"serviceAccount:{email}")
        return registry.discovery()

    return pulumi.Output.all(_project_number=project_number, **emails).apply(discover)
