import logging
from typing import List, Tuple

from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.composition import Composition
from fhir.resources.R4B.messageheader import MessageHeader, MessageHeaderResponse
from fhir.resources.R4B.observation import Observation
from fhir.resources.R4B.operationoutcome import OperationOutcome
from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.reference import Reference
from fhir.resources.R4B.servicerequest import ServiceRequest
from fhir.resources.R4B.task import Task, TaskOutput

from referral_engine.exceptions import (
    InvalidEnvelope,
    MalformedHeader,
    MissingCorrelationIdentifier,
    MissingTaskSubject,
    NoMatchingTask,
    NotFound,
    UnrecognizedMessage,
)
from referral_engine.models.referral.business_status import BusinessStatus
from referral_engine.services.fhir import codes
from referral_engine.services.fhir.bundle.bundle_utils import find_entry, get_resources
from referral_engine.services.fhir.outcome import sanitize_outcome
from referral_engine.services.fhir.references import make_reference, relative_url
from referral_engine.services.fhir.utils import display_name, get_identifier_by_type, set_profile
from referral_engine.services.referral.dispatcher import set_task_output
from referral_engine.services.referral.gateway import ResourceGateway
from referral_engine.stats import MESSAGE_FEEDBACK, MESSAGE_RESPONSE, get_stats

logger = logging.getLogger(__name__)

FAILED_RESPONSE_CODES = ("fatal-error", "transient-error")


def is_referral_message_header(header: MessageHeader) -> bool:
    coding = header.eventCoding
    return coding is not None and coding.code == codes.REFERRAL_EVENT_CODE


class FeedbackReconciler:
    """
    Handles messages sent back by a recipient. A message with a response
    element acknowledges an earlier referral message, any other message carries
    feedback on a referral Task and is matched on its placer identifier.
    """

    def __init__(self, gateway: ResourceGateway) -> None:
        self.__gateway = gateway

    def process_message(self, content: Bundle | None) -> None:
        content, header = self.validate_envelope(content)

        self.__gateway.save(content)

        if header.response is not None:
            self.reconcile_response(content, header.response)
            get_stats().inc(MESSAGE_RESPONSE)
        else:
            self.reconcile_feedback(content, header)
            get_stats().inc(MESSAGE_FEEDBACK)

    @staticmethod
    def validate_envelope(content: Bundle | None) -> Tuple[Bundle, MessageHeader]:
        if content is None or not content.entry:
            raise InvalidEnvelope("content is either null or empty", "Parameters.parameter.where(name='content')")

        if content.type != "message":
            raise InvalidEnvelope("The bundle must be a MESSAGE type", "Bundle.type")

        header = content.entry[0].resource
        if not isinstance(header, MessageHeader):
            raise InvalidEnvelope("The bundle must have MessageHeader first in the entry", "Bundle.entry[0]")

        if not is_referral_message_header(header):
            raise UnrecognizedMessage("Received message is NOT REF/RRI - Patient referral", "MessageHeader.eventCoding")

        return content, header

    def reconcile_response(self, content: Bundle, response: MessageHeaderResponse) -> None:
        """
        Moves the Task and ServiceRequest of the original message to received
        and active, or to failed and revoked when the recipient reports an error.
        """
        outcome = None
        if response.details is not None and response.details.reference:
            entry = find_entry(content, response.details.reference)
            if entry is not None and isinstance(entry.resource, OperationOutcome):
                outcome = entry.resource

        task, service_request = self.__find_original_message(response.identifier)

        if response.code in FAILED_RESPONSE_CODES:
            task.status = "failed"
            service_request.status = "revoked"
        else:
            task.status = "received"
            service_request.status = "active"

        if outcome is not None:
            saved = self.__gateway.save(sanitize_outcome(outcome.model_copy(deep=True)))
            set_task_output(task, saved)

        logger.info(f"Response {response.code} received for Task/{task.id}")
        self.__gateway.update(task)
        self.__gateway.update(service_request)

    def reconcile_feedback(self, content: Bundle, header: MessageHeader) -> None:
        if header.sender is None or header.sender.reference is None:
            raise MalformedHeader("MessageHeader.sender is empty or does not exist", "MessageHeader.sender")
        if not header.destination:
            raise MalformedHeader("MessageHeader.destination is empty or does not exist", "MessageHeader.destination")
        if not header.focus or header.focus[0].reference is None:
            raise MalformedHeader("MessageHeader.focus[0] is empty or does not exist.", "MessageHeader.focus")

        entry = find_entry(content, header.focus[0].reference)
        if entry is None or not isinstance(entry.resource, Task):
            raise MalformedHeader(
                "BSERReferralTask cannot be found from the MessageBundle entries.", "MessageHeader.focus"
            )
        received_task: Task = entry.resource

        placer = get_identifier_by_type(received_task.identifier, codes.PLAC)
        if placer is None or not placer.value:
            raise MissingCorrelationIdentifier("BSERReferralTask must have PLAC's value.", "Task.identifier")

        result = self.__gateway.search(
            "Task",
            [("identifier", placer.value)],
            includes=("Task:subject", "Task:focus"),
        )
        task = result.first(Task)
        if task is None or result.total == 0:
            raise NoMatchingTask("NO Matching Task Found.", "Task.identifier")

        patient = result.first(Patient)
        if patient is None:
            raise MissingTaskSubject(f"Searched Task ({task.id}) has no subject as patient", "Task.for")
        service_request = result.first(ServiceRequest)

        self.__apply_business_status(task, service_request, received_task)
        self.__merge_fill_identifier(task, received_task)

        subject = Reference(reference=f"Patient/{patient.id}", display=display_name(patient))
        for output in received_task.output or []:
            reference = output.valueReference
            if reference is None or not reference.reference:
                raise InvalidEnvelope(
                    "BSERReferralTask.output.valueReference cannot be null or empty.", "Task.output.valueReference"
                )
            document = find_entry(content, reference.reference)
            if document is None or not isinstance(document.resource, Bundle):
                logger.warning(f"Feedback document {reference.reference} is not part of the message")
                continue

            saved = self.__store_feedback_document(document.resource, subject)
            task.output = (task.output or []) + [
                TaskOutput(type=output.type, valueReference=make_reference(saved))
            ]

        if service_request is not None:
            self.__gateway.update(service_request)
        self.__gateway.update(task)
        logger.info(f"Feedback for Task/{task.id} processed")

    def __find_original_message(self, message_id: str | None) -> Tuple[Task, ServiceRequest]:
        if not message_id:
            raise NotFound("MessageHeader.response.identifier is missing", "MessageHeader.response.identifier")

        result = self.__gateway.search("Bundle", [("message", message_id)])
        messages = result.all(Bundle)
        if (result.total is not None and result.total <= 0) or not messages:
            # not every server supports the message search parameter
            fallback = self.__gateway.search("Bundle", [("type", "message")])
            messages = [m for m in fallback.all(Bundle) if _header_id(m) == message_id]

        if not messages:
            raise NotFound(
                f"Failed to find an original message for the response message. Original Message ID = {message_id}",
                "MessageHeader.response.identifier",
            )

        resources = get_resources(messages[0])
        task = next((r for r in resources if isinstance(r, Task)), None)
        if task is None:
            raise NotFound(f"Couldn't locate related Task for the MessageHeader/{message_id}")
        service_request = next((r for r in resources if isinstance(r, ServiceRequest)), None)
        if service_request is None:
            raise NotFound(f"Couldn't locate related ServiceRequest for the MessageHeader/{message_id}")

        return task, service_request

    @staticmethod
    def __apply_business_status(
        task: Task, service_request: ServiceRequest | None, received_task: Task
    ) -> None:
        task.businessStatus = received_task.businessStatus
        status = BusinessStatus.from_codeable_concept(received_task.businessStatus)
        if status is None:
            logger.warning(f"Unknown business status received for Task/{task.id}, statuses are kept")
            return

        task.status = status.task_status
        if service_request is not None:
            service_request.status = status.service_request_status

    @staticmethod
    def __merge_fill_identifier(task: Task, received_task: Task) -> None:
        fill = get_identifier_by_type(received_task.identifier, codes.FILL)
        if fill is None:
            return

        identifiers = list(task.identifier or [])
        existing = get_identifier_by_type(identifiers, codes.FILL)
        if existing is not None:
            identifiers[identifiers.index(existing)] = fill
        else:
            identifiers.append(fill)
        task.identifier = identifiers

    def __store_feedback_document(self, received: Bundle, subject: Reference) -> Bundle:
        """
        Stores the resources the feedback composition points at, rewriting the
        references to the stored copies. Observations are moved onto our patient.
        """
        document = received.model_copy(deep=True)
        document.id = None
        composition = document.entry[0].resource if document.entry else None
        if not isinstance(composition, Composition):
            raise InvalidEnvelope("Feedback document does not start with a Composition", "Bundle.entry[0]")

        for section in composition.section or []:
            entries: List[Reference] = section.entry or []
            for section_entry in entries:
                entry = find_entry(document, section_entry.reference)
                if entry is None or entry.resource is None:
                    continue

                resource = entry.resource
                if isinstance(resource, Observation):
                    resource.subject = subject
                saved = self.__gateway.save(resource)
                section_entry.reference = relative_url(saved)
                entry.fullUrl = relative_url(saved)
                entry.resource = saved

        saved_composition = self.__gateway.save(composition)
        document.entry[0].fullUrl = relative_url(saved_composition)
        document.entry[0].resource = saved_composition
        set_profile(document, codes.PROFILE_FEEDBACK_DOCUMENT)
        return self.__gateway.save(document)


def _header_id(message: Bundle) -> str | None:
    if not message.entry:
        return None
    header = message.entry[0].resource
    return header.id if isinstance(header, MessageHeader) else None
