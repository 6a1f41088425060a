from typing import List

from fhir.resources.R4B.allergyintolerance import AllergyIntolerance
from fhir.resources.R4B.coding import Coding
from fhir.resources.R4B.coverage import Coverage
from fhir.resources.R4B.medicationstatement import MedicationStatement
from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.practitioner import Practitioner
from fhir.resources.R4B.quantity import Quantity
from fhir.resources.R4B.reference import Reference
from fhir.resources.R4B.servicerequest import ServiceRequest
from pydantic import BaseModel, Field


class QuantityOrReference(BaseModel):
    """
    Either a reference to an existing observation or an inline value.
    """
    reference: Reference | None = Field(default=None)
    quantity: Quantity | None = Field(default=None)


class BloodPressureInput(BaseModel):
    reference: Reference | None = Field(default=None)
    systolic: Quantity | None = Field(default=None)
    diastolic: Quantity | None = Field(default=None)
    date: str | None = Field(default=None)


class DiagnosisInput(BaseModel):
    reference: Reference | None = Field(default=None)
    coding: Coding | None = Field(default=None)


class ChildInput(BaseModel):
    first_name: str = Field(default="")
    last_name: str = Field(default="")
    gender: str | None = Field(default=None)
    height: QuantityOrReference | None = Field(default=None)
    weight: QuantityOrReference | None = Field(default=None)


class CommunicationPreference(BaseModel):
    name: str
    value: str


class ReferralIntent(BaseModel):
    """
    Everything received with one referral request.
    """
    referral: ServiceRequest | None = Field(default=None)
    patient: Patient | None = Field(default=None)
    requester: Practitioner | None = Field(default=None)
    coverage: Coverage | None = Field(default=None)
    provider_base_url: str | None = Field(default=None)
    service_type: str | None = Field(default=None)
    education_level: str | None = Field(default=None)
    employment_status: str | None = Field(default=None)
    allergies: List[AllergyIntolerance] = Field(default_factory=list)
    medications: List[MedicationStatement] = Field(default_factory=list)
    blood_pressure: BloodPressureInput | None = Field(default=None)
    body_height: QuantityOrReference | None = Field(default=None)
    body_weight: QuantityOrReference | None = Field(default=None)
    bmi: QuantityOrReference | None = Field(default=None)
    ha1c: QuantityOrReference | None = Field(default=None)
    diagnoses: List[DiagnosisInput] = Field(default_factory=list)
    is_baby_latching: bool | None = Field(default=None)
    moms_concerns: str | None = Field(default=None)
    nipple_shield_use: bool | None = Field(default=None)
    child: ChildInput | None = Field(default=None)
    nrt_authorization_status: str | None = Field(default=None)
    smoking_status: str | None = Field(default=None)
    communication_preferences: List[CommunicationPreference] = Field(default_factory=list)
