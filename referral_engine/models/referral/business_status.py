from enum import Enum

from fhir.resources.R4B.codeableconcept import CodeableConcept

from referral_engine.services.fhir.codes import BSER_BUSINESS_STATUS, concept


class BusinessStatus(Enum):
    """
    Task business status of a referral. Each code drives the Task status and the
    ServiceRequest status together.
    """

    SERVICE_REQUEST_CREATED = ("2.0", "Service Request Created", "requested", "active")
    SERVICE_REQUEST_ACCEPTED = ("3.0", "Service Request Accepted", "accepted", "active")
    SERVICE_REQUEST_DECLINED = ("4.0", "Service Request Declined", "rejected", "revoked")
    EVENT_SCHEDULED = ("5.1.1", "Service Request Event Scheduled", "in-progress", "active")
    EVENT_UNATTENDED = ("5.1.2", "Scheduled Service Request Event Unattended", "in-progress", "active")
    EVENT_CANCELLED = ("5.1.3", "Scheduled Service Request Event Cancelled", "cancelled", "revoked")
    EVENT_COMPLETED = ("5.1.4", "Service Request Event Completed", "completed", "completed")
    CANCELLATION_REQUESTED = ("5.2", "Service Request Cancellation Requested", "in-progress", "active")
    FULFILLMENT_CANCELLED = ("6.0", "Service Request Fulfillment Cancelled", "cancelled", "revoked")
    FULFILLMENT_COMPLETED = ("7.0", "Service Request Fulfillment Completed", "completed", "completed")

    def __init__(self, code: str, display: str, task_status: str, service_request_status: str) -> None:
        self.code = code
        self.display = display
        self.task_status = task_status
        self.service_request_status = service_request_status

    def codeable_concept(self) -> CodeableConcept:
        return concept(BSER_BUSINESS_STATUS, self.code, self.display, self.display)

    @classmethod
    def from_code(cls, code: str | None) -> "BusinessStatus | None":
        for status in cls:
            if status.code == code:
                return status
        return None

    @classmethod
    def from_codeable_concept(cls, value: CodeableConcept | None) -> "BusinessStatus | None":
        """
        Looks for a coding from the business status code system. Codings without a
        system are accepted as well, recipients do not always send one.
        """
        if value is None:
            return None
        for c in value.coding or []:
            if c.system not in (None, BSER_BUSINESS_STATUS):
                continue
            status = cls.from_code(c.code)
            if status is not None:
                return status
        return None
