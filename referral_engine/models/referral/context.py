from dataclasses import dataclass
import logging
from typing import List

from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.endpoint import Endpoint
from fhir.resources.R4B.healthcareservice import HealthcareService
from fhir.resources.R4B.location import Location
from fhir.resources.R4B.organization import Organization
from fhir.resources.R4B.practitioner import Practitioner
from fhir.resources.R4B.practitionerrole import PractitionerRole
from fhir.resources.R4B.reference import Reference

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """
    Settings for one incoming request. Built per request, never shared.
    """
    store_url: str
    process_message_url: str


@dataclass(frozen=True)
class DispatchConfig:
    recipient_ready: bool
    recipient_site: str | None = None


@dataclass
class ResolvedParty:
    role: PractitionerRole | None = None
    practitioner: Practitioner | None = None
    organization: Organization | None = None
    endpoint: Endpoint | None = None
    location: Location | None = None
    healthcare_service: HealthcareService | None = None


@dataclass
class ReferralResult:
    envelope_reference: Reference
    envelope: Bundle
    recipient_endpoint: Endpoint
    warning: str | None = None


class Warnings:
    """
    Collects the non-fatal findings of one request into a single message.
    """

    def __init__(self) -> None:
        self.__messages: List[str] = []

    def add(self, message: str) -> None:
        message = message.strip()
        if message == "":
            return
        logger.warning(message)
        self.__messages.append(message)

    @property
    def messages(self) -> List[str]:
        return list(self.__messages)

    def __bool__(self) -> bool:
        return len(self.__messages) > 0

    def __str__(self) -> str:
        return " ".join(self.__messages)
