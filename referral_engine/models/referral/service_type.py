from enum import Enum

from fhir.resources.R4B.codeableconcept import CodeableConcept

from referral_engine.services.fhir.codes import concept


class SupportingKind(str, Enum):
    ALLERGIES = "allergies"
    MEDICATIONS = "medications"
    BLOOD_PRESSURE = "bloodPressure"
    BODY_HEIGHT = "bodyHeight"
    BODY_WEIGHT = "bodyWeight"
    BMI = "bmi"
    HA1C = "ha1c"
    EARLY_CHILDHOOD_NUTRITION = "earlyChildhoodNutrition"
    CHILD_HEIGHT = "childHeight"
    CHILD_WEIGHT = "childWeight"
    DIAGNOSES = "diagnoses"
    NRT_AUTHORIZATION_STATUS = "nrtAuthorizationStatus"
    SMOKING_STATUS = "smokingStatus"
    COMMUNICATION_PREFERENCES = "communicationPreferences"


class ServiceType(Enum):
    ARTHRITIS = ("arthritis", "Arthritis")
    DIABETES_PREVENTION = ("diabetes-prevention", "Diabetes Prevention")
    EARLY_CHILDHOOD_NUTRITION = ("early-childhood-nutrition", "Early Childhood Nutrition")
    HYPERTENSION = ("hypertension", "Hypertension")
    OBESITY = ("obesity", "Obesity")
    TOBACCO_USE_CESSATION = ("tobacco-use-cessation", "Tobacco Use Cessation")

    def __init__(self, code: str, display: str) -> None:
        self.code = code
        self.display = display

    @classmethod
    def from_code(cls, code: str | None) -> "ServiceType | None":
        for service_type in cls:
            if service_type.code == code:
                return service_type
        return None

    def codeable_concept(self) -> CodeableConcept:
        return concept(None, self.code, self.display, self.display)

    @property
    def section_title(self) -> str:
        return f"{self.display} Referral Supporting Information"

    @property
    def supporting_kinds(self) -> tuple[SupportingKind, ...]:
        return SECTION_CONTENTS[self]


SECTION_CONTENTS: dict[ServiceType, tuple[SupportingKind, ...]] = {
    ServiceType.ARTHRITIS: (
        SupportingKind.ALLERGIES,
        SupportingKind.MEDICATIONS,
        SupportingKind.BLOOD_PRESSURE,
        SupportingKind.BODY_HEIGHT,
        SupportingKind.BODY_WEIGHT,
        SupportingKind.BMI,
    ),
    ServiceType.DIABETES_PREVENTION: (
        SupportingKind.HA1C,
        SupportingKind.BLOOD_PRESSURE,
        SupportingKind.BODY_HEIGHT,
        SupportingKind.BODY_WEIGHT,
        SupportingKind.BMI,
    ),
    ServiceType.EARLY_CHILDHOOD_NUTRITION: (
        SupportingKind.EARLY_CHILDHOOD_NUTRITION,
        SupportingKind.BLOOD_PRESSURE,
        SupportingKind.CHILD_HEIGHT,
        SupportingKind.CHILD_WEIGHT,
    ),
    ServiceType.HYPERTENSION: (
        SupportingKind.DIAGNOSES,
        SupportingKind.BLOOD_PRESSURE,
        SupportingKind.BODY_HEIGHT,
        SupportingKind.BODY_WEIGHT,
        SupportingKind.BMI,
    ),
    ServiceType.OBESITY: (
        SupportingKind.ALLERGIES,
        SupportingKind.BLOOD_PRESSURE,
        SupportingKind.BODY_HEIGHT,
        SupportingKind.BODY_WEIGHT,
        SupportingKind.BMI,
    ),
    ServiceType.TOBACCO_USE_CESSATION: (
        SupportingKind.NRT_AUTHORIZATION_STATUS,
        SupportingKind.SMOKING_STATUS,
        SupportingKind.COMMUNICATION_PREFERENCES,
    ),
}
