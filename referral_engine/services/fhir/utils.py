from datetime import datetime, timezone
import logging
from typing import Any, Dict, Final

from fastapi.encoders import jsonable_encoder
from fhir.resources.R4B.identifier import Identifier
from fhir.resources.R4B.humanname import HumanName
from fhir.resources.R4B.meta import Meta
from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.resource import Resource

from referral_engine.services.fhir.codes import V2_0203

logger = logging.getLogger(__name__)

ERROR_SEVERITIES: Final[tuple[str, ...]] = ("error", "fatal")


def get_resource_type(resource: Dict[str, Any]) -> str:
    res_type_key = "resource_type" if "resource_type" in resource else "resourceType"
    if res_type_key not in resource:
        raise ValueError("Data does not contain a resourceType")
    resource_type: str = resource[res_type_key]

    return resource_type


def to_json(resource: Resource) -> Dict[str, Any]:
    """
    Serializes a resource to its FHIR JSON representation.
    """
    data: Dict[str, Any] = jsonable_encoder(
        resource.model_dump(by_alias=True, exclude_none=True)
    )
    data.setdefault("resourceType", resource.get_resource_type())
    return data


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def set_profile(resource: Resource, profile: str) -> None:
    resource.meta = Meta(profile=[profile])


def display_name(patient: Patient) -> str | None:
    """
    "given family" of the first name of a patient, as shown in subject references.
    None when the patient has no usable name.
    """
    if not patient.name:
        return None
    name: HumanName = patient.name[0]
    given = " ".join(name.given or [])
    return f"{given} {name.family or ''}".strip() or None


def get_identifier_by_type(identifiers: list[Identifier] | None, code: str) -> Identifier | None:
    """
    Returns the first identifier typed with the given v2-0203 code.
    """
    for identifier in identifiers or []:
        if identifier.type is None:
            continue
        for c in identifier.type.coding or []:
            if c.system == V2_0203 and c.code == code:
                return identifier
    return None
