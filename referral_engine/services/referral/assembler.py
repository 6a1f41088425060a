from dataclasses import dataclass
import logging
import uuid
from typing import List

from fhir.resources.R4B.bundle import Bundle, BundleEntry
from fhir.resources.R4B.coverage import Coverage
from fhir.resources.R4B.endpoint import Endpoint
from fhir.resources.R4B.identifier import Identifier
from fhir.resources.R4B.messageheader import MessageHeader, MessageHeaderDestination, MessageHeaderSource
from fhir.resources.R4B.observation import Observation
from fhir.resources.R4B.operationoutcome import OperationOutcome
from fhir.resources.R4B.organization import Organization
from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.practitionerrole import PractitionerRole
from fhir.resources.R4B.reference import Reference
from fhir.resources.R4B.resource import Resource
from fhir.resources.R4B.servicerequest import ServiceRequest
from fhir.resources.R4B.task import Task

from referral_engine.exceptions import (
    InvalidParameter,
    InvalidPerformer,
    InvalidSubject,
    MissingReferral,
    MissingServiceType,
    PatientMismatch,
    ReferralEngineError,
)
from referral_engine.models.referral.business_status import BusinessStatus
from referral_engine.models.referral.context import DispatchConfig, RequestContext, ResolvedParty, Warnings
from referral_engine.models.referral.intent import ReferralIntent
from referral_engine.models.referral.service_type import ServiceType
from referral_engine.services.fhir import clinical, codes, profiles
from referral_engine.services.fhir.bundle.bundle_utils import make_entry
from referral_engine.services.fhir.references import make_reference, try_parse_reference
from referral_engine.services.fhir.utils import display_name, set_profile, utc_now
from referral_engine.services.referral.composition import build_composition, build_document_bundle
from referral_engine.services.referral.gateway import ResourceGateway
from referral_engine.services.referral.resolver import ReferenceResolver
from referral_engine.services.referral.supporting_info import SupportingInfoBuilder

logger = logging.getLogger(__name__)

REFERRAL_EVENT_DISPLAY = "REF/RRI - Patient referral"


@dataclass
class Party:
    """
    A party after normalization, ready to be placed in the envelope.
    """
    role: PractitionerRole
    reference: Reference
    organization: Organization | None
    endpoint: Endpoint
    resolved: ResolvedParty


@dataclass
class AssembledReferral:
    envelope: Bundle
    task: Task
    service_request: ServiceRequest
    recipient_endpoint: Endpoint


def placer_identifier(value: str, assigner: Reference | None = None) -> Identifier:
    return Identifier(
        type=codes.concept(codes.V2_0203, codes.PLAC, "Placer Identifier"),
        system=codes.REQUEST_IDENTIFIER_SYSTEM,
        value=value,
        assigner=assigner,
    )


class ReferralAssembler:
    """
    Builds every resource of one referral and stores them in dependency order:
    subject, initiator, supporting information, document, ServiceRequest, Task,
    MessageHeader and finally the message envelope. Nothing is sent here.
    """

    def __init__(
        self,
        gateway: ResourceGateway,
        context: RequestContext,
        dispatch_config: DispatchConfig,
        warnings: Warnings,
    ) -> None:
        self.__gateway = gateway
        self.__context = context
        self.__dispatch_config = dispatch_config
        self.__warnings = warnings
        self.__resolver = ReferenceResolver(gateway, warnings)

    def assemble(self, intent: ReferralIntent) -> AssembledReferral:
        draft, service_type = self.validate(intent)
        original_subject = draft.subject

        patient = self.__fetch_patient(intent, draft)
        patient = self.deduplicate_subject(patient)
        subject = Reference(reference=f"Patient/{patient.id}", display=display_name(patient))

        initiator = self.__initiator(draft, intent)
        recipient = self.__recipient(draft)

        employment_status = None
        if intent.employment_status is not None:
            employment_status = self.__gateway.save(clinical.employment_status(subject, intent.employment_status))
        education_level = None
        if intent.education_level is not None:
            education_level = self.__gateway.save(clinical.education_level(subject, intent.education_level))

        supporting_info = SupportingInfoBuilder(self.__gateway, subject, original_subject).build(intent)

        composition = self.__gateway.save(
            build_composition(subject, initiator.reference, service_type, supporting_info)
        )
        document = self.__gateway.save(build_document_bundle(composition, supporting_info.resources))
        document_reference = make_reference(document)

        request_identifier = str(uuid.uuid4())
        organization_reference = (
            make_reference(initiator.organization) if initiator.organization is not None else None
        )
        service_request = self.__service_request(
            draft, subject, initiator.reference, document_reference, service_type, request_identifier, organization_reference
        )
        service_request = self.__gateway.save(service_request)
        self.__delete_draft(draft)

        task = self.__task(service_request, subject, initiator, recipient, request_identifier, organization_reference)

        header = MessageHeader(
            eventCoding=codes.coding(codes.V2_0003, codes.REFERRAL_EVENT_CODE, REFERRAL_EVENT_DISPLAY),
            destination=[
                MessageHeaderDestination(endpoint=recipient.endpoint.address, receiver=recipient.reference)
            ],
            sender=initiator.reference,
            source=MessageHeaderSource(endpoint=self.__context.process_message_url),
            focus=[make_reference(task)],
        )
        set_profile(header, codes.PROFILE_MESSAGE_HEADER)
        header = self.__gateway.save(header)

        coverage = self.__coverage(intent.coverage, subject)
        entries = self.__envelope_entries(
            task, service_request, document, patient, subject, initiator, recipient, employment_status, education_level, coverage
        )
        envelope = Bundle(
            type="message",
            timestamp=utc_now(),
            entry=[make_entry(header)] + entries,
        )
        set_profile(envelope, codes.PROFILE_MESSAGE_BUNDLE)
        envelope = self.__gateway.save(envelope)
        logger.info(f"Referral message Bundle/{envelope.id} assembled for Task/{task.id}")

        return AssembledReferral(
            envelope=envelope,
            task=task,
            service_request=service_request,
            recipient_endpoint=recipient.endpoint,
        )

    def validate(self, intent: ReferralIntent) -> tuple[ServiceRequest, ServiceType]:
        """
        Checks everything that can be checked before anything is stored.
        """
        draft = intent.referral
        if draft is None:
            raise MissingReferral()

        if draft.status == "active":
            self.__warnings.add("The referral request has its status already set to ACTIVE.")

        if intent.provider_base_url is None or intent.provider_base_url.strip() == "":
            self.__warnings.add("bserProviderBaseUrl is missing.")

        if draft.id is None or draft.id == "":
            raise InvalidParameter("ServiceRequest does not have id", "ServiceRequest.id")

        parsed = try_parse_reference(draft.subject)
        if parsed is None or parsed.resource_type != "Patient":
            raise InvalidSubject("Subject must be Patient", "ServiceRequest.subject")

        if intent.patient is not None and intent.patient.id != parsed.id:
            raise PatientMismatch(
                "Patient ID does not match between ServiceRequest.subject and patient.id",
                "ServiceRequest.subject",
            )

        service_type = ServiceType.from_code(intent.service_type)
        if service_type is None:
            raise MissingServiceType(
                "ServiceType is missing." if not intent.service_type else f"Unknown serviceType: {intent.service_type}",
                "Parameters.parameter.where(name='serviceType')",
            )

        if not draft.performer:
            raise InvalidPerformer("ServiceRequest.performer is missing", "ServiceRequest.performer")

        return draft, service_type

    def deduplicate_subject(self, patient: Patient) -> Patient:
        """
        Reuses the store patient sharing an identifier with the given patient,
        otherwise stores the given patient.
        """
        for identifier in patient.identifier or []:
            if identifier.value is None:
                continue
            token = f"{identifier.system}|{identifier.value}" if identifier.system else identifier.value
            result = self.__gateway.search("Patient", [("identifier", token)])
            existing = result.first(Patient)
            if existing is not None:
                logger.info(f"Reusing Patient/{existing.id} for identifier {token}")
                return existing

        return self.__gateway.save(patient)

    def __fetch_patient(self, intent: ReferralIntent, draft: ServiceRequest) -> Patient:
        if intent.patient is not None:
            return intent.patient
        return self.__resolver.fetch_subject(draft.subject)

    def __initiator(self, draft: ServiceRequest, intent: ReferralIntent) -> Party:
        resolved = self.__resolver.resolve_initiator(draft.requester, intent.requester)

        if resolved.role is not None:
            role = profiles.to_initiator_role(resolved.role)
        else:
            role = profiles.new_initiator_role(resolved.practitioner)
        role.id = None

        organization = (
            profiles.to_organization(resolved.organization)
            if resolved.organization is not None
            else profiles.new_initiator_organization()
        )
        organization = self.__gateway.save(organization)
        role.organization = make_reference(organization)

        process_message_url = self.__context.process_message_url
        if resolved.endpoint is not None and resolved.endpoint.address == process_message_url:
            endpoint = profiles.to_endpoint(resolved.endpoint)
        else:
            endpoint = profiles.new_initiator_endpoint(process_message_url)
        endpoint = self.__gateway.save(endpoint)
        role.endpoint = [make_reference(endpoint)]

        if resolved.practitioner is not None:
            practitioner = self.__gateway.save(profiles.to_practitioner(resolved.practitioner))
            resolved.practitioner = practitioner
            role.practitioner = make_reference(practitioner)

        role = self.__gateway.save(role)
        return Party(
            role=role,
            reference=make_reference(role),
            organization=organization,
            endpoint=endpoint,
            resolved=resolved,
        )

    def __recipient(self, draft: ServiceRequest) -> Party:
        target = draft.performer[0]
        resolved = self.__resolver.resolve_recipient(target)
        if resolved.role is None:
            raise InvalidPerformer(
                f"The ServiceRequest.performer: {target.reference} does not seem to exist.",
                "ServiceRequest.performer",
            )

        if resolved.organization is not None:
            organization = profiles.to_organization(resolved.organization)
        else:
            organization = profiles.new_recipient_organization(resolved.role.organization)
        if organization.id is None:
            organization.id = str(uuid.uuid4())

        role = profiles.to_recipient_role(resolved.role)
        endpoint = resolved.endpoint
        if (
            self.__dispatch_config.recipient_ready
            and endpoint is not None
            and endpoint.address is not None
            and endpoint.address.strip() != ""
        ):
            endpoint = profiles.to_endpoint(endpoint)
        else:
            self.__warnings.add("Recipient is not ready or target Endpoint is not available")
            endpoint = profiles.stub_recipient_endpoint()
            role.endpoint = (role.endpoint or []) + [make_reference(endpoint)]

        return Party(
            role=role,
            reference=target,
            organization=organization,
            endpoint=endpoint,
            resolved=resolved,
        )

    def __service_request(
        self,
        draft: ServiceRequest,
        subject: Reference,
        requester: Reference,
        document: Reference,
        service_type: ServiceType,
        request_identifier: str,
        assigner: Reference | None,
    ) -> ServiceRequest:
        service_request = draft.model_copy(deep=True)
        service_request.id = None
        service_request.status = "active"
        service_request.subject = subject
        service_request.requester = requester
        service_request.supportingInfo = (service_request.supportingInfo or []) + [document]
        service_request.identifier = (service_request.identifier or []) + [
            placer_identifier(request_identifier, assigner)
        ]
        service_request.reasonCode = [service_type.codeable_concept()]
        service_request.occurrenceDateTime = utc_now()
        set_profile(service_request, codes.PROFILE_SERVICE_REQUEST)
        return service_request

    def __delete_draft(self, draft: ServiceRequest) -> None:
        try:
            status_code, outcome = self.__gateway.delete("ServiceRequest", str(draft.id))
        except ReferralEngineError as e:
            self.__warnings.add(f"DELETE ServiceRequest/{draft.id}: {e.message}")
            return

        if outcome is not None:
            self.__warnings.add(f"DELETE ServiceRequest/{draft.id}: {_outcome_code(outcome)}")
        elif status_code >= 300:
            self.__warnings.add(f"DELETE ServiceRequest/{draft.id}: {status_code}")

    def __task(
        self,
        service_request: ServiceRequest,
        subject: Reference,
        initiator: Party,
        recipient: Party,
        request_identifier: str,
        assigner: Reference | None,
    ) -> Task:
        status = BusinessStatus.SERVICE_REQUEST_CREATED
        task = Task(
            identifier=[placer_identifier(request_identifier, assigner)],
            status=status.task_status,
            businessStatus=status.codeable_concept(),
            intent="order",
            focus=make_reference(service_request),
            for_fhir=subject,
            authoredOn=utc_now(),
            requester=initiator.reference,
            owner=recipient.reference,
        )
        set_profile(task, codes.PROFILE_TASK)

        task = self.__gateway.save(task)
        if task.id is None:
            task.id = str(uuid.uuid4())
        return task

    @staticmethod
    def __coverage(coverage: Coverage | None, subject: Reference) -> Coverage | None:
        if coverage is None:
            return None
        copy = clinical.copy_coverage(coverage, subject)
        copy.id = coverage.id or str(uuid.uuid4())
        return copy

    @staticmethod
    def __envelope_entries(
        task: Task,
        service_request: ServiceRequest,
        document: Bundle,
        patient: Patient,
        subject: Reference,
        initiator: Party,
        recipient: Party,
        employment_status: Observation | None,
        education_level: Observation | None,
        coverage: Coverage | None,
    ) -> List[BundleEntry]:
        entries = [
            make_entry(task),
            make_entry(service_request),
            make_entry(document),
            BundleEntry(fullUrl=subject.reference, resource=patient),
        ]

        resources: List[Resource | None] = [
            initiator.role,
            initiator.resolved.practitioner,
            initiator.organization,
            initiator.endpoint,
            initiator.resolved.location,
            recipient.role,
            recipient.resolved.practitioner,
            recipient.organization,
            recipient.endpoint,
            recipient.resolved.healthcare_service,
            recipient.resolved.location,
            employment_status,
            education_level,
            coverage,
        ]
        for resource in resources:
            if resource is not None:
                entries.append(make_entry(resource))
        return entries


def _outcome_code(outcome: OperationOutcome) -> str:
    issue = outcome.issue[0] if outcome.issue else None
    if issue is None:
        return ""
    if issue.details is not None and issue.details.coding:
        return str(issue.details.coding[0].code)
    return issue.diagnostics or issue.code
