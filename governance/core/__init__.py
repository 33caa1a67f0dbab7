"""Pure reconciliation of project IAM, org policies and service identities."""

from .bindings import (
    Binding,
    BindingPlan,
    BindingSource,
    DependencyEdge,
    IamInputs,
    merge_bindings,
    normalize_bindings,
    validate_exclusivity,
)
from .errors import (
    ConfigConflict,
    DuplicatePolicyKey,
    GovernanceError,
    InvalidPolicyRule,
    InvalidPrincipal,
    UnknownShortcode,
)
from .identities import (
    SERVICE_IDENTITIES,
    PrincipalRef,
    ServiceIdentity,
    ServiceIdentityRegistry,
    resolve_bindings,
    resolve_policy,
)
from .org_policy import (
    Condition,
    OrgPolicy,
    PolicyValues,
    Rule,
    merge_org_policies,
    parse_org_policies,
    validate_rule,
)
from .reconcile import ReconciliationResult, reconcile

__all__ = [
    "Binding",
    "BindingPlan",
    "BindingSource",
    "DependencyEdge",
    "IamInputs",
    "merge_bindings",
    "normalize_bindings",
    "validate_exclusivity",
    "ConfigConflict",
    "DuplicatePolicyKey",
    "GovernanceError",
    "InvalidPolicyRule",
    "InvalidPrincipal",
    "UnknownShortcode",
    "SERVICE_IDENTITIES",
    "PrincipalRef",
    "ServiceIdentity",
    "ServiceIdentityRegistry",
    "resolve_bindings",
    "resolve_policy",
    "Condition",
    "OrgPolicy",
    "PolicyValues",
    "Rule",
    "merge_org_policies",
    "parse_org_policies",
    "validate_rule",
    "ReconciliationResult",
    "reconcile",
]
