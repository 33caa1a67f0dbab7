"""Service identities (service agents) and shortcode resolution.

GCP creates a managed service account for many APIs. Its email embeds the
project number, which only exists once the project has been created, so IAM
members can refer to these identities by shortcode (e.g. "cloudservices" or
"container-engine") instead of by email.

Shortcodes are resolved to PrincipalRef objects, not strings. The
provisioning layer renders a reference once the project number is known.
Some identities are only created by an explicit activation call
(gcp.projects.ServiceIdentity); bindings that reference one of those carry a
DependencyEdge so the binding is applied after the identity exists.
"""

import re
from dataclasses import dataclass
from typing import Iterable

import pulumi

from .bindings import Binding, DependencyEdge
from .errors import InvalidPrincipal, UnknownShortcode


PRINCIPAL_PATTERN = re.compile(r"^serviceAccount:[a-z0-9-]+@[a-z0-9.-]+\.com$")


@dataclass(frozen=True)
class PrincipalRef:
    """Deferred reference to a service identity's principal."""

    shortcode: str
    service: str
    template: str

    def render(self, project_number) -> str:
        return "serviceAccount:" + self.template.format(number=project_number)

    def __str__(self) -> str:
        return "serviceAccount:" + self.template


@dataclass(frozen=True)
class ServiceIdentity:
    service: str
    shortcode: str
    api: str
    template: str
    # Identity only exists after a gcp.projects.ServiceIdentity call
    eager: bool = False

    @property
    def reference(self) -> PrincipalRef:
        return PrincipalRef(self.shortcode, self.service, self.template)


SERVICE_IDENTITIES = (
    ServiceIdentity("cloudservices", "cloudservices", "cloudapis.googleapis.com",
                    "{number}@cloudservices.gserviceaccount.com", eager=True),
    ServiceIdentity("compute", "compute", "compute.googleapis.com",
                    "{number}-compute@developer.gserviceaccount.com"),
    ServiceIdentity("compute-system", "compute-system", "oslogin.googleapis.com",
                    "service-{number}@compute-system.iam.gserviceaccount.com"),
    ServiceIdentity("container", "container-engine", "container.googleapis.com",
                    "service-{number}@container-engine-robot.iam.gserviceaccount.com"),
    ServiceIdentity("containerregistry", "gcr", "containerregistry.googleapis.com",
                    "service-{number}@containerregistry.iam.gserviceaccount.com"),
    ServiceIdentity("cloudbuild", "cloudbuild", "cloudbuild.googleapis.com",
                    "{number}@cloudbuild.gserviceaccount.com", eager=True),
    ServiceIdentity("dataflow", "dataflow", "dataflow.googleapis.com",
                    "service-{number}@dataflow-service-producer-prod.iam.gserviceaccount.com"),
    ServiceIdentity("dataproc", "dataproc", "dataproc.googleapis.com",
                    "service-{number}@dataproc-accounts.iam.gserviceaccount.com"),
    ServiceIdentity("appengineflex", "gae-flex", "appengineflex.googleapis.com",
                    "service-{number}@gae-api-prod.google.com.iam.gserviceaccount.com"),
    ServiceIdentity("cloudfunctions", "cloudfunctions", "cloudfunctions.googleapis.com",
                    "service-{number}@gcf-admin-robot.iam.gserviceaccount.com"),
    ServiceIdentity("run", "cloudrun", "run.googleapis.com",
                    "service-{number}@serverless-robot-prod.iam.gserviceaccount.com"),
    ServiceIdentity("composer", "composer", "composer.googleapis.com",
                    "service-{number}@cloudcomposer-accounts.iam.gserviceaccount.com"),
    ServiceIdentity("artifactregistry", "artifactregistry", "artifactregistry.googleapis.com",
                    "service-{number}@gcp-sa-artifactregistry.iam.gserviceaccount.com", eager=True),
    ServiceIdentity("pubsub", "pubsub", "pubsub.googleapis.com",
                    "service-{number}@gcp-sa-pubsub.iam.gserviceaccount.com", eager=True),
    ServiceIdentity("secretmanager", "secretmanager", "secretmanager.googleapis.com",
                    "service-{number}@gcp-sa-secretmanager.iam.gserviceaccount.com", eager=True),
    ServiceIdentity("sqladmin", "sqladmin", "sqladmin.googleapis.com",
                    "service-{number}@gcp-sa-cloud-sql.iam.gserviceaccount.com", eager=True),
    ServiceIdentity("storage", "storage", "storage.googleapis.com",
                    "service-{number}@gs-project-accounts.iam.gserviceaccount.com", eager=True),
    ServiceIdentity("gkehub", "fleet", "gkehub.googleapis.com",
                    "service-{number}@gcp-sa-gkehub.iam.gserviceaccount.com", eager=True),
    ServiceIdentity("healthcare", "healthcare", "healthcare.googleapis.com",
                    "service-{number}@gcp-sa-healthcare.iam.gserviceaccount.com", eager=True),
    ServiceIdentity("bigquery-encryption", "bq", "bigquery.googleapis.com",
                    "bq-{number}@bigquery-encryption.iam.gserviceaccount.com", eager=True),
)


class ServiceIdentityRegistry:
    """Service identities referenced during one reconciliation pass.

    A registry is built fresh for every pass. project_number, when known, is
    only used to check materialized principals and to fill in the discovery
    map; references are never rendered eagerly.
    """

    def __init__(
        self,
        table: Iterable[ServiceIdentity] = SERVICE_IDENTITIES,
        project_number: str | int | None = None,
    ):
        table = tuple(table)
        self._by_service = {identity.service: identity for identity in table}
        self._by_api = {identity.api: identity for identity in table}
        self._by_shortcode = {identity.shortcode: identity for identity in table}
        self.project_number = None if project_number is None else str(project_number)
        self._registered: dict[str, ServiceIdentity] = {}
        self._materialized: dict[str, str] = {}

    def register(self, service: str) -> ServiceIdentity:
        """Register the identity of a service, by service key or API name.

        Registering the same service again returns the same identity.

        Raises:
            UnknownShortcode: The service has no identity in the table
        """
        identity = self._by_service.get(service) or self._by_api.get(service)
        if identity is None:
            raise UnknownShortcode(f"No service identity known for service '{service}'", key=service)

        if identity.service not in self._registered:
            self._registered[identity.service] = identity
            pulumi.log.debug(f"Registered service identity {identity.shortcode}")
        return self._registered[identity.service]

    def identity(self, shortcode: str) -> ServiceIdentity:
        identity = self._by_shortcode.get(shortcode)
        if identity is None:
            raise UnknownShortcode(f"Unknown service identity shortcode '{shortcode}'", key=shortcode)
        return identity

    def resolve(self, shortcode: str) -> PrincipalRef:
        """Resolve a shortcode to a deferred principal reference.

        Raises:
            UnknownShortcode: The shortcode is not in the table
        """
        identity = self.identity(shortcode)
        return self.register(identity.service).reference

    def registered(self) -> tuple[ServiceIdentity, ...]:
        return tuple(self._registered[key] for key in sorted(self._registered))

    def eager_identities(self) -> tuple[ServiceIdentity, ...]:
        """Registered identities that must be created with the project."""
        return tuple(identity for identity in self.registered() if identity.eager)

    def materialize(self, shortcode: str, principal: str) -> str:
        """Record the concrete principal of an identity once it exists.

        Args:
            shortcode: Identity shortcode
            principal: serviceAccount: member string reported by the provider

        Raises:
            UnknownShortcode: The shortcode is not in the table
            InvalidPrincipal: The principal is malformed or belongs to another project
        """
        identity = self.identity(shortcode)

        if not PRINCIPAL_PATTERN.match(principal):
            raise InvalidPrincipal(
                f"Principal '{principal}' for '{shortcode}' is not a service account member",
                key=shortcode,
            )
        if self.project_number is not None and not re.search(
            rf"(?<!\d){re.escape(self.project_number)}(?!\d)", principal
        ):
            raise InvalidPrincipal(
                f"Principal '{principal}' for '{shortcode}' does not belong to "
                f"project number {self.project_number}",
                key=shortcode,
            )

        self.register(identity.service)
        self._materialized[shortcode] = principal
        return principal

    def discovery(self) -> dict[str, str]:
        """shortcode -> principal for every registered identity that can be resolved now."""
        found = {}
        for identity in self.registered():
            if identity.shortcode in self._materialized:
                found[identity.shortcode] = self._materialized[identity.shortcode]
            elif self.project_number is not None:
                found[identity.shortcode] = identity.reference.render(self.project_number)
        return found


def is_shortcode(member) -> bool:
    return isinstance(member, str) and ":" not in member


def _resolve_member(
    role: str, member, registry: ServiceIdentityRegistry
) -> tuple[object, DependencyEdge | None]:
    if not is_shortcode(member):
        return member, None

    try:
        identity = registry.identity(member)
    except UnknownShortcode as e:
        raise UnknownShortcode(
            f"Unknown service identity shortcode '{member}' in members of {role}",
            key=member,
        ) from e

    reference = registry.resolve(member)
    edge = DependencyEdge(role, reference, identity.service) if identity.eager else None
    return reference, edge


def resolve_bindings(
    bindings: Iterable[Binding], registry: ServiceIdentityRegistry
) -> tuple[tuple[Binding, ...], tuple[DependencyEdge, ...]]:
    """Replace shortcode members with PrincipalRefs.

    Args:
        bindings: Normalized bindings
        registry: Registry for this pass

    Returns:
        Tuple of (resolved bindings, dependency edges)
    """
    resolved = []
    edges = []
    for binding in bindings:
        member, edge = _resolve_member(binding.role, binding.member, registry)
        resolved.append(Binding(binding.role, member, binding.source))
        if edge is not None:
            edges.append(edge)
    return tuple(resolved), tuple(edges)


def resolve_policy(
    policy: dict[str, list], registry: ServiceIdentityRegistry
) -> tuple[dict[str, list], tuple[DependencyEdge, ...]]:
    """Replace shortcode members of an iam_policy map with PrincipalRefs."""
    resolved = {}
    edges = []
    for role, members in policy.items():
        resolved[role] = []
        for member in members or []:
            member, edge = _resolve_member(role, member, registry)
            resolved[role].append(member)
            if edge is not None:
                edges.append(edge)
    return resolved, tuple(edges)
