"""Project IAM, org policy and service identity governance."""

from .project import create_project_governance, reconcile_from_config

__all__ = ["create_project_governance", "reconcile_from_config"]
