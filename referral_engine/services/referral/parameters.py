"""
Conversion between the FHIR Parameters of the operations and the internal
models. Input is validated into the Parameters model first, after which every
named parameter is checked for the resource or datatype it is expected to hold.
"""
import datetime
import logging
from typing import Any, Dict, List, Type, TypeVar

from fhir.resources.R4B.allergyintolerance import AllergyIntolerance
from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.coverage import Coverage
from fhir.resources.R4B.medicationstatement import MedicationStatement
from fhir.resources.R4B.parameters import Parameters, ParametersParameter
from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.practitioner import Practitioner
from fhir.resources.R4B.reference import Reference
from fhir.resources.R4B.resource import Resource
from fhir.resources.R4B.servicerequest import ServiceRequest

from referral_engine.exceptions import InvalidEnvelope, InvalidParameter
from referral_engine.models.referral.context import ReferralResult
from referral_engine.models.referral.intent import (
    BloodPressureInput,
    ChildInput,
    CommunicationPreference,
    DiagnosisInput,
    QuantityOrReference,
    ReferralIntent,
)
from referral_engine.services.fhir.resources.factory import create_model
from referral_engine.services.fhir.utils import get_resource_type

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Resource)

SCALAR_FIELDS = ("valueCode", "valueString", "valueUri", "valueUrl", "valueCanonical", "valueId")


def _expression(name: str | None) -> str:
    return f"Parameters.parameter.where(name='{name}')"


def _resource(model: Type[R], param: ParametersParameter) -> R:
    if not isinstance(param.resource, model):
        raise InvalidParameter(
            f"{param.name} must contain a {model.get_resource_type()} resource", _expression(param.name)
        )
    return param.resource


def _scalar(param: ParametersParameter) -> str | None:
    for field in SCALAR_FIELDS:
        value = getattr(param, field)
        if value is not None:
            return str(value)
    if param.valueCoding is not None:
        return param.valueCoding.code
    if param.valueCodeableConcept is not None:
        for coding in param.valueCodeableConcept.coding or []:
            if coding.code is not None:
                return coding.code
    if param.valueBoolean is not None:
        return str(param.valueBoolean).lower()
    return None


def _boolean(param: ParametersParameter) -> bool:
    if param.valueBoolean is not None:
        return param.valueBoolean
    value = _scalar(param)
    return value is not None and value.lower() in ("true", "yes", "1")


def _date(param: ParametersParameter) -> str | None:
    if isinstance(param.valueDateTime, datetime.date):
        return param.valueDateTime.isoformat()
    if param.valueDateTime is not None:
        return str(param.valueDateTime)
    return param.valueString


def _quantity_or_reference(param: ParametersParameter) -> QuantityOrReference:
    if param.valueReference is not None:
        return QuantityOrReference(reference=param.valueReference)
    if param.valueQuantity is not None:
        return QuantityOrReference(quantity=param.valueQuantity)
    if param.valueString is not None:
        return QuantityOrReference(reference=Reference(reference=param.valueString))
    raise InvalidParameter(f"{param.name} must be either Reference or Quantity", _expression(param.name))


def _bundle_resources(model: Type[R], param: ParametersParameter) -> List[R]:
    bundle = param.resource
    if not isinstance(bundle, Bundle):
        raise InvalidParameter(f"{param.name} must contain a Bundle", _expression(param.name))

    resources: List[R] = []
    for entry in bundle.entry or []:
        if entry.resource is None:
            continue
        if not isinstance(entry.resource, model):
            raise InvalidParameter(
                f"{param.name} may only contain {model.get_resource_type()} resources", _expression(param.name)
            )
        resources.append(entry.resource)
    return resources


def _blood_pressure(param: ParametersParameter) -> BloodPressureInput:
    blood_pressure = BloodPressureInput()
    for part in param.part or []:
        match part.name:
            case "reference":
                blood_pressure.reference = part.valueReference
            case "systolic":
                blood_pressure.systolic = part.valueQuantity
            case "diastolic":
                blood_pressure.diastolic = part.valueQuantity
            case "date":
                blood_pressure.date = _date(part)
    return blood_pressure


def _child(param: ParametersParameter) -> ChildInput:
    child = ChildInput()
    for part in param.part or []:
        match part.name:
            case "firstName":
                child.first_name = _scalar(part) or ""
            case "lastName":
                child.last_name = _scalar(part) or ""
            case "gender":
                child.gender = _scalar(part)
            case "height":
                child.height = _quantity_or_reference(part)
            case "weight":
                child.weight = _quantity_or_reference(part)
    return child


def _diagnosis(param: ParametersParameter) -> DiagnosisInput:
    if param.valueReference is not None:
        return DiagnosisInput(reference=param.valueReference)
    if param.valueCoding is not None:
        return DiagnosisInput(coding=param.valueCoding)
    raise InvalidParameter("diagnosis must be either Reference or Coding", _expression("diagnosis"))


def _communication_preferences(param: ParametersParameter) -> List[CommunicationPreference]:
    preferences = []
    for part in param.part or []:
        value = _scalar(part)
        if part.name is None or value is None:
            continue
        preferences.append(CommunicationPreference(name=part.name, value=value))
    return preferences


def parse_referral_request(data: Dict[str, Any]) -> ReferralIntent:
    """
    Reads the input Parameters of $referral-request. Unknown parameters are
    ignored.
    """
    if data.get("resourceType") != "Parameters":
        raise InvalidParameter("Expected a Parameters resource", "Parameters")
    try:
        parameters = create_model(Parameters, data)
    except ValueError as e:
        raise InvalidParameter(str(e), "Parameters")

    intent = ReferralIntent()
    for param in parameters.parameter or []:
        match param.name:
            case "referral":
                intent.referral = _resource(ServiceRequest, param)
            case "patient":
                intent.patient = _resource(Patient, param)
            case "requester":
                intent.requester = _resource(Practitioner, param)
            case "coverage":
                intent.coverage = _resource(Coverage, param)
            case "bserProviderBaseUrl":
                intent.provider_base_url = _scalar(param)
            case "serviceType":
                intent.service_type = _scalar(param)
            case "educationLevel":
                intent.education_level = _scalar(param)
            case "employmentStatus":
                intent.employment_status = _scalar(param)
            case "allergies":
                intent.allergies = _bundle_resources(AllergyIntolerance, param)
            case "medications":
                intent.medications = _bundle_resources(MedicationStatement, param)
            case "bloodPressure":
                intent.blood_pressure = _blood_pressure(param)
            case "bodyHeight":
                intent.body_height = _quantity_or_reference(param)
            case "bodyWeight":
                intent.body_weight = _quantity_or_reference(param)
            case "bmi":
                intent.bmi = _quantity_or_reference(param)
            case "ha1cObservation":
                intent.ha1c = _quantity_or_reference(param)
            case "diagnosis":
                intent.diagnoses.append(_diagnosis(param))
            case "isBabyLatching":
                intent.is_baby_latching = _boolean(param)
            case "momsConcerns":
                intent.moms_concerns = _scalar(param)
            case "nippleShieldUse":
                intent.nipple_shield_use = _boolean(param)
            case "child":
                intent.child = _child(param)
            case "nrtAuthorizationStatus":
                intent.nrt_authorization_status = _scalar(param)
            case "smokingStatus":
                intent.smoking_status = _scalar(param)
            case "communicationPreferences":
                intent.communication_preferences = _communication_preferences(param)
            case _:
                logger.debug(f"Ignoring unknown parameter {param.name}")

    return intent


def parse_message_content(data: Dict[str, Any]) -> Bundle | None:
    """
    $process-message accepts Parameters with a content parameter or the
    message Bundle itself.
    """
    try:
        resource_type = get_resource_type(data)
    except ValueError:
        raise InvalidEnvelope("Request body is not a FHIR resource", "Parameters")

    if resource_type == "Bundle":
        try:
            return create_model(Bundle, data)
        except ValueError as e:
            raise InvalidEnvelope(str(e), _expression("content"))
    if resource_type != "Parameters":
        raise InvalidEnvelope("content must be a Bundle", _expression("content"))

    try:
        parameters = create_model(Parameters, data)
    except ValueError as e:
        raise InvalidEnvelope(str(e), "Parameters")

    content = next((p for p in parameters.parameter or [] if p.name == "content"), None)
    if content is None or content.resource is None:
        return None
    if not isinstance(content.resource, Bundle):
        raise InvalidEnvelope("content must be a Bundle", _expression("content"))
    return content.resource


def referral_result_to_parameters(result: ReferralResult) -> Parameters:
    parameters = [
        ParametersParameter(name="referral_request_reference", valueReference=result.envelope_reference),
        ParametersParameter(name="referral_request_resource", resource=result.envelope),
        ParametersParameter(name="recipient_endpoint", resource=result.recipient_endpoint),
    ]
    if result.warning:
        parameters.append(ParametersParameter(name="warning", valueString=result.warning))

    return Parameters(parameter=parameters)
