"""IAM binding normalization, exclusivity checks and merging.

Project IAM can be declared through five input shapes:

- iam: {role: [members]}, authoritative for each role listed
- group_iam: {group: [roles]}, authoritative, merged into the same roles as iam
- iam_additive: {role: [members]}, additive
- iam_additive_members: {member: [roles]}, additive
- iam_policy: {role: [members]}, the complete IAM policy of the project

Authoritative roles are owned outright: any member not in the merged set for
a role is revoked when the plan is applied. Additive bindings never revoke
anything. iam_policy replaces everything, so it cannot be combined with the
other shapes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

import pulumi

from .errors import ConfigConflict


class BindingSource(Enum):
    GROUP = "group_iam"
    ROLE_AUTHORITATIVE = "iam"
    ROLE_ADDITIVE = "iam_additive"
    MEMBER_ADDITIVE = "iam_additive_members"

    @property
    def authoritative(self) -> bool:
        return self in (BindingSource.GROUP, BindingSource.ROLE_AUTHORITATIVE)


@dataclass(frozen=True)
class Binding:
    role: str
    # A principal string, a shortcode token, or a PrincipalRef once resolved
    member: Any
    source: BindingSource


@dataclass(frozen=True)
class IamInputs:
    """The raw IAM shapes as read from stack configuration."""

    iam: dict[str, list[str]] = field(default_factory=dict)
    group_iam: dict[str, list[str]] = field(default_factory=dict)
    iam_additive: dict[str, list[str]] = field(default_factory=dict)
    iam_additive_members: dict[str, list[str]] = field(default_factory=dict)
    iam_policy: dict[str, list[str]] | None = None

    def non_empty_maps(self) -> list[str]:
        """Names of the binding maps (everything except iam_policy) with entries."""
        return [
            source.value
            for source in BindingSource
            if getattr(self, source.value)
        ]


@dataclass(frozen=True)
class DependencyEdge:
    """Binding (role, member) must wait for service's identity to exist."""

    role: str
    member: Any
    service: str


@dataclass(frozen=True)
class BindingPlan:
    """Partitioned IAM operations ready for the provisioning layer.

    Attributes:
        authoritative: role -> complete member set (absent members are revoked)
        additive: independent (role, member) grants
        full_policy: role -> ordered members, the whole IAM policy, or None
        dependencies: identity materialization edges for shortcode members
    """

    authoritative: dict[str, frozenset] = field(default_factory=dict)
    additive: frozenset = frozenset()
    full_policy: dict[str, tuple] | None = None
    dependencies: tuple[DependencyEdge, ...] = ()


def _group_member(group: str) -> str:
    return group if ":" in group else f"group:{group}"


def normalize_bindings(inputs: IamInputs) -> tuple[Binding, ...]:
    """Expand the four binding maps into canonical Binding triples.

    Duplicates are kept; merge_bindings collapses them. iam_policy is not
    expanded here.

    Args:
        inputs: Raw IAM inputs

    Returns:
        Tuple of Binding objects
    """
    bindings = []

    for role, members in (inputs.iam or {}).items():
        for member in members or []:
            bindings.append(Binding(role, member, BindingSource.ROLE_AUTHORITATIVE))

    # group_iam is keyed by group, values are roles
    for group, roles in (inputs.group_iam or {}).items():
        for role in roles or []:
            bindings.append(Binding(role, _group_member(group), BindingSource.GROUP))

    for role, members in (inputs.iam_additive or {}).items():
        for member in members or []:
            bindings.append(Binding(role, member, BindingSource.ROLE_ADDITIVE))

    for member, roles in (inputs.iam_additive_members or {}).items():
        for role in roles or []:
            bindings.append(Binding(role, member, BindingSource.MEMBER_ADDITIVE))

    pulumi.log.debug(f"Normalized {len(bindings)} IAM bindings")
    return tuple(bindings)


def validate_exclusivity(inputs: IamInputs) -> None:
    """Reject iam_policy combined with any other IAM input.

    The same role in both group_iam and iam is not a conflict, their members
    are unioned by merge_bindings.

    Raises:
        ConfigConflict: iam_policy is set and another map has entries
    """
    if inputs.iam_policy is None:
        return

    others = inputs.non_empty_maps()
    if others:
        raise ConfigConflict(
            f"iam_policy is authoritative for the whole project and cannot be "
            f"combined with {', '.join(others)}",
            key="iam_policy",
        )


def _member_key(member: Any) -> str:
    return str(member)


def _ordered_unique(members: Iterable[Any]) -> tuple:
    return tuple(dict.fromkeys(members))


def merge_bindings(
    bindings: Iterable[Binding],
    full_policy: dict[str, Iterable[Any]] | None = None,
    dependencies: Iterable[DependencyEdge] = (),
) -> BindingPlan:
    """Merge canonical bindings into a BindingPlan.

    Authoritative bindings (iam, group_iam) are unioned per role and the
    resulting set replaces the role's members: anything not in the set is
    revoked. Additive bindings are unioned as independent (role, member)
    pairs next to the authoritative roles. A pair present in both is kept
    in both; applying it twice is harmless.

    When full_policy is given it is the entire IAM state and no other
    bindings may be present (see validate_exclusivity).

    Args:
        bindings: Canonical, resolved bindings
        full_policy: Resolved iam_policy, or None
        dependencies: Edges recorded by the shortcode resolver

    Returns:
        A new BindingPlan
    """
    bindings = tuple(bindings)
    dependencies = tuple(sorted(
        set(dependencies),
        key=lambda e: (e.service, e.role, _member_key(e.member)),
    ))

    if full_policy is not None:
        if bindings:
            raise ConfigConflict(
                "iam_policy cannot be merged with other IAM bindings",
                key="iam_policy",
            )
        policy = {
            role: _ordered_unique(members or [])
            for role, members in sorted(full_policy.items())
        }
        pulumi.log.debug(f"Using iam_policy with {len(policy)} roles as full IAM state")
        return BindingPlan(full_policy=policy, dependencies=dependencies)

    authoritative: dict[str, set] = {}
    additive = set()
    for binding in bindings:
        if binding.source.authoritative:
            authoritative.setdefault(binding.role, set()).add(binding.member)
        else:
            additive.add((binding.role, binding.member))

    pulumi.log.debug(
        f"Merged {len(authoritative)} authoritative roles and {len(additive)} additive bindings"
    )

    return BindingPlan(
        authoritative={
            role: frozenset(members) for role, members in sorted(authoritative.items())
        },
        additive=frozenset(additive),
        dependencies=dependencies,
    )


def sorted_members(members: Iterable[Any]) -> list:
    """Members in a stable order, for resource inputs and exports."""
    return sorted(members, key=_member_key)
