"""
Code systems, codes and profiles used on the resources exchanged with recipients.
"""
from typing import Final

from fhir.resources.R4B.codeableconcept import CodeableConcept
from fhir.resources.R4B.coding import Coding

LOINC: Final[str] = "http://loinc.org"
SNOMED: Final[str] = "http://snomed.info/sct"
V2_0203: Final[str] = "http://terminology.hl7.org/CodeSystem/v2-0203"
V2_0003: Final[str] = "http://terminology.hl7.org/CodeSystem/v2-0003"
V3_EDUCATION_LEVEL: Final[str] = "http://terminology.hl7.org/CodeSystem/v3-EducationLevel"
V3_OBSERVATION_VALUE: Final[str] = "http://terminology.hl7.org/CodeSystem/v3-ObservationValue"
OBSERVATION_CATEGORY: Final[str] = "http://terminology.hl7.org/CodeSystem/observation-category"
CONDITION_CATEGORY: Final[str] = "http://terminology.hl7.org/CodeSystem/condition-category"
ORGANIZATION_TYPE: Final[str] = "http://terminology.hl7.org/CodeSystem/organization-type"
ENDPOINT_CONNECTION_TYPE: Final[str] = "http://terminology.hl7.org/CodeSystem/endpoint-connection-type"
BSER_BUSINESS_STATUS: Final[str] = "http://hl7.org/fhir/us/bser/CodeSystem/TaskBusinessStatusCS"
BSER_OBSERVATION_CODES: Final[str] = "http://hl7.org/fhir/us/bser/CodeSystem/ObservationCodesCS"
BSER_NRT_AUTHORIZATION_STATUS: Final[str] = "http://hl7.org/fhir/us/bser/CodeSystem/NRTAuthorizationStatusCS"
BSER_EARLY_CHILDHOOD_NUTRITION: Final[str] = "http://hl7.org/fhir/us/bser/CodeSystem/EarlyChildhoodNutritionObservationCodesCS"
BSER_COMMUNICATION_PREFERENCES: Final[str] = "http://hl7.org/fhir/us/bser/CodeSystem/TelecomCommunicationPreferencesCS"

REQUEST_IDENTIFIER_SYSTEM: Final[str] = "urn:bser:request:id"
DOCUMENT_IDENTIFIER_SYSTEM: Final[str] = "urn:bser:request:document"
RECIPIENT_NOT_READY_URL: Final[str] = "http://recipient.notready.or.test/"
REFERRAL_PAYLOAD_TEXT: Final[str] = "BSeR Referral Request Message"
REFERRAL_EVENT_CODE: Final[str] = "I12"
TASK_OUTPUT_TEXT: Final[str] = "ServiceRequest Task Details"

PLAC: Final[str] = "PLAC"
FILL: Final[str] = "FILL"

_BSER = "http://hl7.org/fhir/us/bser/StructureDefinition/"
_US_CORE = "http://hl7.org/fhir/us/core/StructureDefinition/"

PROFILE_ORGANIZATION: Final[str] = _BSER + "BSeR-Organization"
PROFILE_INITIATOR_ROLE: Final[str] = _BSER + "BSeR-ReferralInitiatorPractitionerRole"
PROFILE_RECIPIENT_ROLE: Final[str] = _BSER + "BSeR-ReferralRecipientPractitionerRole"
PROFILE_SERVICE_REQUEST: Final[str] = _BSER + "BSeR-ReferralServiceRequest"
PROFILE_TASK: Final[str] = _BSER + "BSeR-ReferralTask"
PROFILE_MESSAGE_HEADER: Final[str] = _BSER + "BSeR-ReferralMessageHeader"
PROFILE_MESSAGE_BUNDLE: Final[str] = _BSER + "BSeR-ReferralMessageBundle"
PROFILE_COMPOSITION: Final[str] = _BSER + "BSeR-ReferralRequestComposition"
PROFILE_DOCUMENT_BUNDLE: Final[str] = _BSER + "BSeR-ReferralRequestDocumentBundle"
PROFILE_FEEDBACK_DOCUMENT: Final[str] = _BSER + "BSeR-ReferralFeedbackDocumentBundle"
PROFILE_MEDICATION_STATEMENT: Final[str] = _BSER + "BSeR-MedicationStatement"
PROFILE_HA1C: Final[str] = _BSER + "BSeR-HA1CObservation"
PROFILE_EARLY_CHILDHOOD_NUTRITION: Final[str] = _BSER + "BSeR-EarlyChildhoodNutritionObservation"
PROFILE_NRT_AUTHORIZATION_STATUS: Final[str] = _BSER + "BSeR-NRTAuthorizationStatus"
PROFILE_COMMUNICATION_PREFERENCES: Final[str] = _BSER + "BSeR-TelcomCommunicationPreferences"
PROFILE_EDUCATION_LEVEL: Final[str] = _BSER + "BSeR-EducationLevel"
PROFILE_COVERAGE: Final[str] = _BSER + "BSeR-Coverage"
PROFILE_EMPLOYMENT_STATUS: Final[str] = "http://hl7.org/fhir/us/odh/StructureDefinition/odh-EmploymentStatus"
PROFILE_ALLERGY: Final[str] = _US_CORE + "us-core-allergyintolerance"
PROFILE_BLOOD_PRESSURE: Final[str] = _US_CORE + "us-core-blood-pressure"
PROFILE_BODY_HEIGHT: Final[str] = _US_CORE + "us-core-body-height"
PROFILE_BODY_WEIGHT: Final[str] = _US_CORE + "us-core-body-weight"
PROFILE_BMI: Final[str] = _US_CORE + "us-core-bmi"
PROFILE_CONDITION: Final[str] = _US_CORE + "us-core-condition-problems-health-concerns"
PROFILE_SMOKING_STATUS: Final[str] = _US_CORE + "us-core-smokingstatus"

# (code, display) pairs
LOINC_BLOOD_PRESSURE = ("85354-9", "Blood pressure panel with all children optional")
LOINC_SYSTOLIC = ("8480-6", "Systolic blood pressure")
LOINC_DIASTOLIC = ("8462-4", "Diastolic blood pressure")
LOINC_BODY_HEIGHT = ("8302-2", "Body height")
LOINC_BODY_WEIGHT = ("29463-7", "Body weight")
LOINC_BMI = ("39156-5", "Body mass index (BMI) [Ratio]")
LOINC_HA1C = ("4548-4", "Hemoglobin A1c/Hemoglobin.total in Blood")
LOINC_REFERRAL_NOTE = ("57133-1", "Referral note")
LOINC_SMOKING_STATUS = ("72166-2", "Tobacco smoking status")
LOINC_EDUCATION_LEVEL = ("82589-3", "Highest level of education")
LOINC_EMPLOYMENT_STATUS = ("74165-2", "History of employment status NIOSH")

SMOKING_STATUS: Final[dict[str, str]] = {
    "449868002": "Smokes tobacco daily",
    "428041000124106": "Occasional tobacco smoker",
    "8517006": "Ex-smoker",
    "266919005": "Never smoked tobacco",
    "77176002": "Smoker",
    "266927001": "Tobacco smoking consumption unknown",
    "428071000124103": "Heavy tobacco smoker",
    "428061000124105": "Light tobacco smoker",
}

EDUCATION_LEVEL: Final[dict[str, str]] = {
    "ELEM": "Elementary School",
    "SEC": "Some secondary or high school education",
    "HS": "High School or secondary school degree complete",
    "SCOL": "Some College education",
    "ASSOC": "Associate's or technical degree complete",
    "BD": "College or baccalaureate degree complete",
    "PB": "Some post-baccalaureate education",
    "GD": "Graduate or professional Degree complete",
    "POSTG": "Doctoral or post graduate education",
}

# input code -> (code, display)
NRT_AUTHORIZATION_STATUS: Final[dict[str, tuple[str, str]]] = {
    "AP": ("approved", "Approved"),
    "DE": ("denied", "Denied"),
    "PE": ("pending", "Pending"),
}

EARLY_CHILDHOOD_NUTRITION: Final[dict[str, str]] = {
    "ableToLatch": "Able to latch",
    "maternalConcern": "Maternal concern",
    "nippleShield": "Nipple shield use",
}

COMMUNICATION_PREFERENCES: Final[dict[str, tuple[str, str]]] = {
    "bestDay": ("bestDay", "Best day"),
    "bestTime": ("bestTime", "Best time"),
    "leaveMessage": ("leaveMessageIndicator", "Leave message indicator"),
}


def coding(system: str | None, code: str, display: str | None = None) -> Coding:
    values = {"code": code}
    if system is not None:
        values["system"] = system
    if display is not None:
        values["display"] = display
    return Coding.model_validate(values)


def concept(
    system: str | None, code: str, display: str | None = None, text: str | None = None
) -> CodeableConcept:
    return CodeableConcept(coding=[coding(system, code, display)], text=text)


def loinc(code_display: tuple[str, str]) -> CodeableConcept:
    return concept(LOINC, code_display[0], code_display[1])


def has_coding(value: CodeableConcept | None, system: str | None, code: str) -> bool:
    if value is None:
        return False
    for c in value.coding or []:
        if c.code == code and (system is None or c.system == system):
            return True
    return False
