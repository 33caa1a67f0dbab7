"""Main Pulumi program for project governance."""

import pulumi
from governance import create_project_governance


def main():
    """Main entry point for Pulumi infrastructure."""
    config = pulumi.Config()
    stack = pulumi.get_stack()

    # IAM, org policies and service identities for the project
    # Note: Fails before any resource is created if the configuration conflicts
    governance = create_project_governance(config)

    # Export outputs
    pulumi.export("project", config.require("gcp_project"))
    pulumi.export("service_identities", governance["discovery"])  # For other stacks' IAM
    pulumi.export("iam_dependencies", governance["dependencies"])
    pulumi.export("authoritative_roles", governance["authoritative_roles"])
    pulumi.export("org_policy_names", governance["org_policy_names"])
    pulumi.export("stack", stack)


if __name__ == "__main__":
    main()
