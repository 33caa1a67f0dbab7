"""Pulumi resources for a reconciled governance plan."""

from .iam import create_iam_resources, create_service_identities, service_identity_discovery
from .org_policy import create_org_policies
from .policy_files import load_org_policy_files

__all__ = [
    "create_iam_resources",
    "create_service_identities",
    "service_identity_discovery",
    "create_org_policies",
    "load_org_policy_files",
]
