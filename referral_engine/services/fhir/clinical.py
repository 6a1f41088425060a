"""
Builders for the supporting information attached to a referral. Every builder
takes the subject reference of the referral so the result always points at the
patient being referred.
"""
from typing import Any, List

from fhir.resources.R4B.allergyintolerance import AllergyIntolerance
from fhir.resources.R4B.codeableconcept import CodeableConcept
from fhir.resources.R4B.coding import Coding
from fhir.resources.R4B.condition import Condition
from fhir.resources.R4B.coverage import Coverage
from fhir.resources.R4B.humanname import HumanName
from fhir.resources.R4B.medicationstatement import MedicationStatement
from fhir.resources.R4B.observation import Observation, ObservationComponent
from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.quantity import Quantity
from fhir.resources.R4B.reference import Reference

from referral_engine.exceptions import InvalidParameter
from referral_engine.models.referral.intent import ChildInput, CommunicationPreference
from referral_engine.services.fhir import codes
from referral_engine.services.fhir.utils import set_profile, utc_now


def _category(code: str) -> List[CodeableConcept]:
    return [codes.concept(codes.OBSERVATION_CATEGORY, code)]


def _observation(
    code: CodeableConcept,
    subject: Reference,
    category: str,
    profile: str | None = None,
    **value: Any,
) -> Observation:
    observation = Observation(
        status="final",
        category=_category(category),
        code=code,
        subject=subject,
        effectiveDateTime=utc_now(),
        **value,
    )
    if profile is not None:
        set_profile(observation, profile)
    return observation


def blood_pressure(
    subject: Reference,
    systolic: Quantity | None,
    diastolic: Quantity | None,
    date: str | None = None,
) -> Observation:
    components = []
    if systolic is not None:
        components.append(ObservationComponent(code=codes.loinc(codes.LOINC_SYSTOLIC), valueQuantity=systolic))
    if diastolic is not None:
        components.append(ObservationComponent(code=codes.loinc(codes.LOINC_DIASTOLIC), valueQuantity=diastolic))

    observation = _observation(
        codes.loinc(codes.LOINC_BLOOD_PRESSURE),
        subject,
        "vital-signs",
        codes.PROFILE_BLOOD_PRESSURE,
        component=components or None,
    )
    if date:
        observation.effectiveDateTime = date
    return observation


def vital_sign(
    subject: Reference, code_display: tuple[str, str], profile: str, value: Quantity
) -> Observation:
    return _observation(codes.loinc(code_display), subject, "vital-signs", profile, valueQuantity=value)


def ha1c(subject: Reference, value: Quantity) -> Observation:
    return _observation(
        codes.loinc(codes.LOINC_HA1C), subject, "laboratory", codes.PROFILE_HA1C, valueQuantity=value
    )


def education_level(subject: Reference, code: str) -> Observation:
    if code not in codes.EDUCATION_LEVEL:
        raise InvalidParameter(
            f"Unknown education level: {code}", "Parameters.parameter.where(name='educationLevel')"
        )
    return _observation(
        codes.loinc(codes.LOINC_EDUCATION_LEVEL),
        subject,
        "social-history",
        codes.PROFILE_EDUCATION_LEVEL,
        valueCodeableConcept=codes.concept(codes.V3_EDUCATION_LEVEL, code, codes.EDUCATION_LEVEL[code]),
    )


def employment_status(subject: Reference, code: str) -> Observation:
    return _observation(
        codes.loinc(codes.LOINC_EMPLOYMENT_STATUS),
        subject,
        "social-history",
        codes.PROFILE_EMPLOYMENT_STATUS,
        valueCodeableConcept=codes.concept(codes.V3_OBSERVATION_VALUE, code),
    )


def early_childhood_nutrition(subject: Reference, key: str, **value: Any) -> Observation:
    return _observation(
        codes.concept(codes.BSER_EARLY_CHILDHOOD_NUTRITION, key, codes.EARLY_CHILDHOOD_NUTRITION[key]),
        subject,
        "survey",
        codes.PROFILE_EARLY_CHILDHOOD_NUTRITION,
        **value,
    )


def child_patient(child: ChildInput) -> Patient:
    name = HumanName(family=child.last_name or None, given=[child.first_name] if child.first_name else None)
    return Patient(name=[name], gender=child.gender)


def diagnosis(subject: Reference, code: Coding) -> Condition:
    condition = Condition(
        clinicalStatus=codes.concept(
            "http://terminology.hl7.org/CodeSystem/condition-clinical", "active", "Active"
        ),
        category=[codes.concept(codes.CONDITION_CATEGORY, "problem-list-item", "Problem List Item")],
        code=CodeableConcept(coding=[code], text=code.display),
        subject=subject,
        recordedDate=utc_now(),
    )
    set_profile(condition, codes.PROFILE_CONDITION)
    return condition


def nrt_authorization_status(subject: Reference, code: str) -> Observation:
    if code not in codes.NRT_AUTHORIZATION_STATUS:
        raise InvalidParameter(
            f"Unknown NRT authorization status: {code}",
            "Parameters.parameter.where(name='nrtAuthorizationStatus')",
        )
    value_code, display = codes.NRT_AUTHORIZATION_STATUS[code]
    return _observation(
        codes.concept(codes.BSER_OBSERVATION_CODES, "NRTAuthorizationStatus", "NRT Authorization Status"),
        subject,
        "social-history",
        codes.PROFILE_NRT_AUTHORIZATION_STATUS,
        valueCodeableConcept=codes.concept(codes.BSER_NRT_AUTHORIZATION_STATUS, value_code, display, display),
    )


def smoking_status(subject: Reference, code: str) -> Observation:
    if code not in codes.SMOKING_STATUS:
        raise InvalidParameter(
            f"Unknown smoking status: {code}", "Parameters.parameter.where(name='smokingStatus')"
        )
    display = codes.SMOKING_STATUS[code]
    return _observation(
        codes.loinc(codes.LOINC_SMOKING_STATUS),
        subject,
        "social-history",
        codes.PROFILE_SMOKING_STATUS,
        valueCodeableConcept=codes.concept(codes.SNOMED, code, display, display),
    )


def communication_preference(subject: Reference, preference: CommunicationPreference) -> Observation:
    if preference.name not in codes.COMMUNICATION_PREFERENCES:
        raise InvalidParameter(
            f"Unknown communication preference: {preference.name}",
            "Parameters.parameter.where(name='communicationPreferences')",
        )
    code, display = codes.COMMUNICATION_PREFERENCES[preference.name]
    return _observation(
        codes.concept(codes.BSER_COMMUNICATION_PREFERENCES, code, display),
        subject,
        "social-history",
        codes.PROFILE_COMMUNICATION_PREFERENCES,
        valueString=preference.value,
    )


def copy_allergy(allergy: AllergyIntolerance, subject: Reference) -> AllergyIntolerance:
    copy = allergy.model_copy(deep=True)
    copy.id = None
    copy.patient = subject
    set_profile(copy, codes.PROFILE_ALLERGY)
    return copy


def copy_medication(medication: MedicationStatement, subject: Reference) -> MedicationStatement:
    copy = medication.model_copy(deep=True)
    copy.id = None
    copy.subject = subject
    set_profile(copy, codes.PROFILE_MEDICATION_STATEMENT)
    return copy


def copy_coverage(coverage: Coverage, subject: Reference) -> Coverage:
    copy = coverage.model_copy(deep=True)
    copy.id = None
    copy.beneficiary = subject
    set_profile(copy, codes.PROFILE_COVERAGE)
    return copy


def copy_observation(observation: Observation, subject: Reference, profile: str) -> Observation:
    copy = observation.model_copy(deep=True)
    copy.id = None
    copy.subject = subject
    set_profile(copy, profile)
    return copy


def copy_condition(condition: Condition, subject: Reference) -> Condition:
    copy = condition.model_copy(deep=True)
    copy.id = None
    copy.subject = subject
    problem_list = codes.concept(codes.CONDITION_CATEGORY, "problem-list-item", "Problem List Item")
    if not any(codes.has_coding(c, codes.CONDITION_CATEGORY, "problem-list-item") for c in copy.category or []):
        copy.category = (copy.category or []) + [problem_list]
    set_profile(copy, codes.PROFILE_CONDITION)
    return copy
