"""Single reconciliation pass over IAM and org policy inputs."""

from dataclasses import dataclass, field
from typing import Iterable, Mapping

import pulumi

from .bindings import BindingPlan, IamInputs, merge_bindings, normalize_bindings, validate_exclusivity
from .identities import ServiceIdentity, ServiceIdentityRegistry, resolve_bindings, resolve_policy
from .org_policy import OrgPolicy, merge_org_policies


@dataclass(frozen=True)
class ReconciliationResult:
    bindings: BindingPlan
    org_policies: dict[str, OrgPolicy] = field(default_factory=dict)
    identities: tuple[ServiceIdentity, ...] = ()
    eager_identities: tuple[ServiceIdentity, ...] = ()
    discovery: dict[str, str] = field(default_factory=dict)

    @property
    def dependencies(self):
        return self.bindings.dependencies


def reconcile(
    inputs: IamInputs,
    inline_policies: Mapping[str, OrgPolicy] | None = None,
    file_policies: Mapping[str, OrgPolicy] | None = None,
    registry: ServiceIdentityRegistry | None = None,
    services: Iterable[str] = (),
) -> ReconciliationResult:
    """Compute the canonical IAM and org policy state for a project.

    Either the full result is returned or an error is raised; nothing is
    produced for a partially valid configuration.

    Args:
        inputs: Raw IAM inputs
        inline_policies: Parsed inline org policies
        file_policies: Parsed org policies from the data directory
        registry: Service identity registry, a fresh one if not given
        services: Services whose identities are registered up front

    Returns:
        ReconciliationResult

    Raises:
        ConfigConflict: iam_policy combined with other IAM inputs
        UnknownShortcode: A member or service has no known service identity
        InvalidPolicyRule: An effective org policy is malformed
    """
    registry = registry or ServiceIdentityRegistry()

    validate_exclusivity(inputs)

    for service in services:
        registry.register(service)

    if inputs.iam_policy is not None:
        full_policy, edges = resolve_policy(inputs.iam_policy, registry)
        plan = merge_bindings((), full_policy=full_policy, dependencies=edges)
    else:
        bindings, edges = resolve_bindings(normalize_bindings(inputs), registry)
        plan = merge_bindings(bindings, dependencies=edges)

    org_policies = merge_org_policies(inline_policies, file_policies)

    pulumi.log.debug(
        f"Reconciled IAM with {len(plan.dependencies)} identity dependencies "
        f"and {len(org_policies)} org policies"
    )

    return ReconciliationResult(
        bindings=plan,
        org_policies=org_policies,
        identities=registry.registered(),
        eager_identities=registry.eager_identities(),
        discovery=registry.discovery(),
    )
