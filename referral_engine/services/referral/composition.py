import uuid
from typing import List

from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.composition import Composition, CompositionSection
from fhir.resources.R4B.identifier import Identifier
from fhir.resources.R4B.reference import Reference
from fhir.resources.R4B.resource import Resource

from referral_engine.models.referral.service_type import ServiceType
from referral_engine.services.fhir import codes
from referral_engine.services.fhir.bundle.bundle_utils import make_entry
from referral_engine.services.fhir.utils import set_profile, utc_now
from referral_engine.services.referral.supporting_info import SupportingInfo

COMPOSITION_TITLE = "Referral request"


def build_composition(
    subject: Reference,
    author: Reference,
    service_type: ServiceType,
    supporting_info: SupportingInfo,
) -> Composition:
    """
    The referral note carries one section for the requested service. Only the
    supporting kinds belonging to that service are referenced from it.
    """
    section = CompositionSection(
        title=service_type.section_title,
        code=service_type.codeable_concept(),
        entry=supporting_info.for_kinds(service_type.supporting_kinds) or None,
    )
    composition = Composition(
        status="final",
        type=codes.loinc(codes.LOINC_REFERRAL_NOTE),
        subject=subject,
        date=utc_now(),
        author=[author],
        title=COMPOSITION_TITLE,
        section=[section],
    )
    set_profile(composition, codes.PROFILE_COMPOSITION)
    return composition


def build_document_bundle(composition: Composition, resources: List[Resource]) -> Bundle:
    """
    Document bundle with the composition as first entry followed by every
    supporting resource.
    """
    bundle = Bundle(
        id=str(uuid.uuid4()),
        type="document",
        identifier=Identifier(system=codes.DOCUMENT_IDENTIFIER_SYSTEM, value=str(uuid.uuid4())),
        timestamp=utc_now(),
        entry=[make_entry(composition)] + [make_entry(resource) for resource in resources],
    )
    set_profile(bundle, codes.PROFILE_DOCUMENT_BUNDLE)
    return bundle
