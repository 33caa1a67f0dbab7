"""Org policy YAML files.

Every *.yaml / *.yml file in the org policy data directory holds a mapping of
constraint name to policy, in the same shape as the inline org_policies
config. A constraint may only be declared in one file.
"""

from pathlib import Path

import pulumi
import yaml

from ..core.errors import DuplicatePolicyKey, InvalidPolicyRule


def _find_policy_files(data_path: Path) -> list[Path]:
    """Find all policy files in the data directory, sorted by name."""
    return sorted(
        path for path in data_path.iterdir()
        if path.is_file() and path.suffix in (".yaml", ".yml")
    )


def _load_policies_from_file(policy_file: Path) -> dict:
    with open(policy_file, "r") as f:
        data = yaml.safe_load(f)

    if not data:
        return {}

    if not isinstance(data, dict):
        raise InvalidPolicyRule(
            f"Org policy file {policy_file.name} must contain a mapping of constraint names",
            key=policy_file.name,
        )

    return data


def load_org_policy_files(data_path: str | Path | None) -> dict:
    """Load raw org policies from every YAML file in a directory.

    Args:
        data_path: Directory holding the policy files

    Returns:
        Dictionary of constraint name to raw policy mapping

    Raises:
        DuplicatePolicyKey: Two files declare the same constraint
        InvalidPolicyRule: A file does not contain a mapping
    """
    if not data_path:
        return {}

    data_path = Path(data_path)
    if not data_path.is_dir():
        pulumi.log.warn(f"Org policy data path {data_path} not found, no file policies loaded")
        return {}

    policies = {}
    sources = {}

    for policy_file in _find_policy_files(data_path):
        file_policies = _load_policies_from_file(policy_file)

        for name, policy in file_policies.items():
            if name in policies:
                raise DuplicatePolicyKey(
                    f"Org policy '{name}' is declared in both {sources[name]} and {policy_file.name}",
                    key=name,
                )
            policies[name] = policy
            sources[name] = policy_file.name

        if file_policies:
            pulumi.log.info(f"Loaded {len(file_policies)} org policies from {policy_file.name}")

    return policies
