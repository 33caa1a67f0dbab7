"""Configuration errors raised during a reconciliation pass.

All of these are deterministic configuration defects. They are raised
synchronously while inputs are normalized and validated, and a pass that
raises produces no output at all.
"""


class GovernanceError(ValueError):
    """Base class for governance configuration errors.

    Attributes:
        key: The offending role, shortcode or policy name
    """

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class ConfigConflict(GovernanceError):
    """iam_policy was combined with another IAM input."""


class UnknownShortcode(GovernanceError):
    """A shortcode or service is not in the service identity table."""


class InvalidPolicyRule(GovernanceError):
    """An org policy or one of its rules is malformed."""


class DuplicatePolicyKey(GovernanceError):
    """The same constraint is declared twice within one policy source."""


class InvalidPrincipal(GovernanceError):
    """A materialized principal does not match the expected form."""
