import logging

from fhir.resources.R4B.endpoint import Endpoint
from fhir.resources.R4B.healthcareservice import HealthcareService
from fhir.resources.R4B.location import Location
from fhir.resources.R4B.organization import Organization
from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.practitioner import Practitioner
from fhir.resources.R4B.practitionerrole import PractitionerRole
from fhir.resources.R4B.reference import Reference

from referral_engine.exceptions import InvalidPerformer, InvalidSubject, NotFound, UnresolvedParty
from referral_engine.models.referral.context import ResolvedParty, Warnings
from referral_engine.services.fhir.references import ParsedReference, try_parse_reference
from referral_engine.services.fhir.search_result import SearchResult
from referral_engine.services.referral.gateway import ResourceGateway

logger = logging.getLogger(__name__)

ROLE_INCLUDES = (
    "PractitionerRole:organization",
    "PractitionerRole:endpoint",
    "PractitionerRole:location",
)
RECIPIENT_INCLUDES = ROLE_INCLUDES + ("PractitionerRole:service",)


class ReferenceResolver:
    """
    Looks up the parties of a referral in the directories they are referenced
    from. A role is searched together with its practitioner, organization,
    endpoints and locations in one request.
    """

    def __init__(self, gateway: ResourceGateway, warnings: Warnings) -> None:
        self.__gateway = gateway
        self.__warnings = warnings

    def fetch_subject(self, reference: Reference) -> Patient:
        parsed = try_parse_reference(reference)
        if parsed is None or parsed.resource_type != "Patient":
            raise InvalidSubject("Subject must be Patient", "ServiceRequest.subject")

        resource = self.__gateway.read(reference)
        if not isinstance(resource, Patient):
            raise InvalidSubject("Subject must be Patient", "ServiceRequest.subject")
        return resource

    def resolve_initiator(
        self, reference: Reference | None, practitioner: Practitioner | None = None
    ) -> ResolvedParty:
        """
        The requester may point at a PractitionerRole or at a Practitioner. A
        requester without a role in the directory still yields a party, the
        role is filled in later.
        """
        parsed = try_parse_reference(reference)
        if reference is None or parsed is None:
            raise UnresolvedParty("Requester is NULL", "ServiceRequest.requester")

        if parsed.resource_type == "PractitionerRole":
            result = self.__search_roles(parsed, ("_id", parsed.id), ROLE_INCLUDES + ("PractitionerRole:practitioner",))
        elif parsed.resource_type == "Practitioner":
            if practitioner is None:
                practitioner = self.__read_practitioner(reference)
            result = self.__search_roles(parsed, ("practitioner", parsed.id), ROLE_INCLUDES)
        else:
            raise UnresolvedParty(
                f"Requester must be a Practitioner or PractitionerRole: {reference.reference}",
                "ServiceRequest.requester",
            )

        party = self.__to_party(result)
        if practitioner is not None:
            party.practitioner = practitioner

        if party.practitioner is None:
            raise UnresolvedParty(
                "Initiator could not be obtained from the requester or the requester parameter",
                "ServiceRequest.requester",
            )
        if party.role is None:
            self.__warnings.add(
                f"No PractitionerRole found for {reference.reference}, the initiator role is created."
            )
        return party

    def resolve_recipient(self, reference: Reference | None) -> ResolvedParty:
        parsed = try_parse_reference(reference)
        if reference is None or parsed is None:
            raise InvalidPerformer("ServiceRequest.performer is missing", "ServiceRequest.performer")

        result = self.__search_roles(
            parsed, ("_id", parsed.id), RECIPIENT_INCLUDES + ("PractitionerRole:practitioner",)
        )
        party = self.__to_party(result)
        if party.role is None:
            raise InvalidPerformer(
                f"The ServiceRequest.performer: {reference.reference} does not seem to exist.",
                "ServiceRequest.performer",
            )
        return party

    def __search_roles(
        self, parsed: ParsedReference, criterion: tuple[str, str], includes: tuple[str, ...]
    ) -> SearchResult:
        return self.__gateway.search(
            "PractitionerRole", [criterion], includes=includes, base_url=parsed.base_url
        )

    def __read_practitioner(self, reference: Reference) -> Practitioner | None:
        try:
            resource = self.__gateway.read(reference)
        except NotFound as e:
            logger.warning(f"Requester {reference.reference} could not be read: {e.message}")
            return None
        return resource if isinstance(resource, Practitioner) else None

    @staticmethod
    def __to_party(result: SearchResult) -> ResolvedParty:
        return ResolvedParty(
            role=result.first(PractitionerRole),
            practitioner=result.first(Practitioner),
            organization=result.first(Organization),
            endpoint=result.first(Endpoint),
            location=result.first(Location),
            healthcare_service=result.first(HealthcareService),
        )
