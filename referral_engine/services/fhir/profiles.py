"""
Converters from the shapes found in provider directories to the normalized
resources sent to recipients. Each converter maps its fields explicitly so a
directory adding elements never leaks them into a referral.
"""
import uuid

from fhir.resources.R4B.codeableconcept import CodeableConcept
from fhir.resources.R4B.endpoint import Endpoint
from fhir.resources.R4B.identifier import Identifier
from fhir.resources.R4B.organization import Organization
from fhir.resources.R4B.practitioner import Practitioner
from fhir.resources.R4B.practitionerrole import PractitionerRole
from fhir.resources.R4B.reference import Reference

from referral_engine.services.fhir.codes import (
    ENDPOINT_CONNECTION_TYPE,
    ORGANIZATION_TYPE,
    PROFILE_INITIATOR_ROLE,
    PROFILE_ORGANIZATION,
    PROFILE_RECIPIENT_ROLE,
    RECIPIENT_NOT_READY_URL,
    REFERRAL_PAYLOAD_TEXT,
    coding,
    concept,
)
from referral_engine.services.fhir.utils import set_profile

INITIATOR_ORGANIZATION_NAME = "Initiator Organization"


def to_initiator_role(role: PractitionerRole) -> PractitionerRole:
    return _to_role(role, PROFILE_INITIATOR_ROLE)


def to_recipient_role(role: PractitionerRole) -> PractitionerRole:
    return _to_role(role, PROFILE_RECIPIENT_ROLE)


def new_initiator_role(practitioner: Practitioner | None) -> PractitionerRole:
    """
    Placeholder role for a requester the directory does not know.
    """
    role = PractitionerRole(active=True)
    if practitioner is not None and practitioner.id is not None:
        role.practitioner = Reference(reference=f"Practitioner/{practitioner.id}")
    set_profile(role, PROFILE_INITIATOR_ROLE)
    return role


def _to_role(role: PractitionerRole, profile: str) -> PractitionerRole:
    normalized = PractitionerRole(
        id=role.id,
        identifier=role.identifier,
        active=role.active if role.active is not None else True,
        period=role.period,
        practitioner=role.practitioner,
        organization=role.organization,
        code=role.code,
        specialty=role.specialty,
        location=role.location,
        healthcareService=role.healthcareService,
        telecom=role.telecom,
        endpoint=role.endpoint,
    )
    set_profile(normalized, profile)
    return normalized


def to_practitioner(practitioner: Practitioner) -> Practitioner:
    return Practitioner(
        id=practitioner.id,
        identifier=practitioner.identifier,
        active=practitioner.active,
        name=practitioner.name,
        telecom=practitioner.telecom,
        address=practitioner.address,
        gender=practitioner.gender,
        qualification=practitioner.qualification,
    )


def to_organization(organization: Organization) -> Organization:
    normalized = Organization(
        id=organization.id,
        identifier=organization.identifier,
        active=True,
        type=organization.type,
        name=organization.name,
        alias=organization.alias,
        telecom=organization.telecom,
        address=organization.address,
        partOf=organization.partOf,
        endpoint=organization.endpoint,
    )
    set_profile(normalized, PROFILE_ORGANIZATION)
    return normalized


def new_initiator_organization() -> Organization:
    organization = Organization(
        active=True,
        name=INITIATOR_ORGANIZATION_NAME,
        type=[concept(ORGANIZATION_TYPE, "prov", "Healthcare Provider")],
    )
    set_profile(organization, PROFILE_ORGANIZATION)
    return organization


def new_recipient_organization(reference: Reference | None) -> Organization:
    """
    Stand-in for a recipient organization that is only known by the reference
    on its role. Identifier and name are taken from that reference.
    """
    organization = Organization(
        id=str(uuid.uuid4()),
        active=True,
        type=[concept(ORGANIZATION_TYPE, "bus", "Non-Healthcare Business or Corporation")],
    )
    if reference is not None:
        if reference.identifier is not None:
            organization.identifier = [Identifier(system=reference.identifier.system, value=reference.identifier.value)]
        if reference.display:
            organization.name = reference.display
    set_profile(organization, PROFILE_ORGANIZATION)
    return organization


def _message_endpoint(address: str, status: str) -> Endpoint:
    return Endpoint(
        status=status,
        connectionType=coding(ENDPOINT_CONNECTION_TYPE, "hl7-fhir-msg", "HL7 FHIR Messaging"),
        payloadType=[CodeableConcept(text=REFERRAL_PAYLOAD_TEXT)],
        address=address,
    )


def new_initiator_endpoint(address: str) -> Endpoint:
    return _message_endpoint(address, "active")


def to_endpoint(endpoint: Endpoint) -> Endpoint:
    return Endpoint(
        id=endpoint.id,
        identifier=endpoint.identifier,
        status=endpoint.status,
        connectionType=endpoint.connectionType,
        name=endpoint.name,
        managingOrganization=endpoint.managingOrganization,
        contact=endpoint.contact,
        payloadType=endpoint.payloadType,
        payloadMimeType=endpoint.payloadMimeType,
        address=endpoint.address,
        header=endpoint.header,
    )


def stub_recipient_endpoint() -> Endpoint:
    """
    Endpoint used when the recipient cannot receive messages yet.
    """
    endpoint = _message_endpoint(RECIPIENT_NOT_READY_URL, "test")
    endpoint.id = str(uuid.uuid4())
    return endpoint
