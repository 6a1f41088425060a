from dataclasses import dataclass, field
import logging
from typing import Dict, List, Sequence

from fhir.resources.R4B.condition import Condition
from fhir.resources.R4B.observation import Observation
from fhir.resources.R4B.reference import Reference
from fhir.resources.R4B.resource import Resource

from referral_engine.exceptions import InvalidParameter, SubjectMismatch
from referral_engine.models.referral.intent import QuantityOrReference, ReferralIntent
from referral_engine.models.referral.service_type import SupportingKind
from referral_engine.services.fhir import clinical, codes
from referral_engine.services.fhir.references import is_equal_reference, make_reference, try_parse_reference
from referral_engine.services.fhir.utils import utc_now
from referral_engine.services.referral.gateway import ResourceGateway

logger = logging.getLogger(__name__)

SUBJECT_MISMATCH = "the Subject reference does not match with ServiceRequest.subject"


@dataclass
class SupportingInfo:
    resources: List[Resource] = field(default_factory=list)
    references: Dict[SupportingKind, List[Reference]] = field(default_factory=dict)

    def add(self, kind: SupportingKind, resource: Resource) -> None:
        self.resources.append(resource)
        self.references.setdefault(kind, []).append(make_reference(resource))

    def for_kinds(self, kinds: Sequence[SupportingKind]) -> List[Reference]:
        references: List[Reference] = []
        for kind in kinds:
            references.extend(self.references.get(kind, []))
        return references


class SupportingInfoBuilder:
    """
    Turns the optional clinical parameters of a referral into stored resources.
    Referenced resources are read, checked against the referral subject and
    copied; inline values are built from scratch. Every resource is saved
    before it is referenced.
    """

    def __init__(self, gateway: ResourceGateway, subject: Reference, original_subject: Reference) -> None:
        self.__gateway = gateway
        self.__subject = subject
        self.__original_subject = original_subject
        parsed = try_parse_reference(original_subject)
        self.__subject_base_url = parsed.base_url if parsed is not None else None

    def build(self, intent: ReferralIntent) -> SupportingInfo:
        info = SupportingInfo()

        for allergy in intent.allergies:
            self.__check_subject(allergy.patient, "AllergyIntolerance.patient")
            info.add(SupportingKind.ALLERGIES, self.__save(clinical.copy_allergy(allergy, self.__subject)))

        for medication in intent.medications:
            self.__check_subject(medication.subject, "MedicationStatement.subject")
            info.add(SupportingKind.MEDICATIONS, self.__save(clinical.copy_medication(medication, self.__subject)))

        if intent.blood_pressure is not None:
            bp = intent.blood_pressure
            if bp.reference is not None:
                observation = self.__read_observation(bp.reference, "bloodPressure.subject")
                resource = clinical.copy_observation(observation, self.__subject, codes.PROFILE_BLOOD_PRESSURE)
            else:
                resource = clinical.blood_pressure(self.__subject, bp.systolic, bp.diastolic, bp.date)
            info.add(SupportingKind.BLOOD_PRESSURE, self.__save(resource))

        vitals = (
            (SupportingKind.BODY_HEIGHT, intent.body_height, codes.LOINC_BODY_HEIGHT, codes.PROFILE_BODY_HEIGHT, "bodyHeight"),
            (SupportingKind.BODY_WEIGHT, intent.body_weight, codes.LOINC_BODY_WEIGHT, codes.PROFILE_BODY_WEIGHT, "bodyWeight"),
            (SupportingKind.BMI, intent.bmi, codes.LOINC_BMI, codes.PROFILE_BMI, "bmi"),
        )
        for kind, value, code, profile, name in vitals:
            if value is None:
                continue
            resource = self.__vital(value, self.__subject, code, profile, name, check_subject=True)
            info.add(kind, self.__save(resource))

        if intent.ha1c is not None:
            info.add(SupportingKind.HA1C, self.__save(self.__ha1c(intent.ha1c)))

        self.__early_childhood_nutrition(intent, info)
        self.__child(intent, info)

        for diagnosis in intent.diagnoses:
            if diagnosis.reference is not None:
                condition = self.__gateway.read(diagnosis.reference)
                if not isinstance(condition, Condition):
                    raise InvalidParameter("diagnosis must reference a Condition", "diagnosis")
                self.__check_subject(condition.subject, "diagnosis.subject")
                resource = clinical.copy_condition(condition, self.__subject)
            elif diagnosis.coding is not None:
                resource = clinical.diagnosis(self.__subject, diagnosis.coding)
            else:
                raise InvalidParameter("diagnosis must be either Reference or Coding", "diagnosis")
            info.add(SupportingKind.DIAGNOSES, self.__save(resource))

        if intent.nrt_authorization_status is not None:
            resource = clinical.nrt_authorization_status(self.__subject, intent.nrt_authorization_status)
            info.add(SupportingKind.NRT_AUTHORIZATION_STATUS, self.__save(resource))

        if intent.smoking_status is not None:
            resource = clinical.smoking_status(self.__subject, intent.smoking_status)
            info.add(SupportingKind.SMOKING_STATUS, self.__save(resource))

        for preference in intent.communication_preferences:
            resource = clinical.communication_preference(self.__subject, preference)
            info.add(SupportingKind.COMMUNICATION_PREFERENCES, self.__save(resource))

        logger.info(f"Created {len(info.resources)} supporting resources")
        return info

    def __early_childhood_nutrition(self, intent: ReferralIntent, info: SupportingInfo) -> None:
        observations = []
        if intent.is_baby_latching is not None:
            observations.append(
                clinical.early_childhood_nutrition(self.__subject, "ableToLatch", valueBoolean=intent.is_baby_latching)
            )
        if intent.moms_concerns is not None:
            observations.append(
                clinical.early_childhood_nutrition(self.__subject, "maternalConcern", valueString=intent.moms_concerns)
            )
        if intent.nipple_shield_use is not None:
            observations.append(
                clinical.early_childhood_nutrition(self.__subject, "nippleShield", valueBoolean=intent.nipple_shield_use)
            )

        for observation in observations:
            info.add(SupportingKind.EARLY_CHILDHOOD_NUTRITION, self.__save(observation))

    def __child(self, intent: ReferralIntent, info: SupportingInfo) -> None:
        """
        The dependent child is stored as a Patient of its own, its vitals point
        at that Patient instead of the referral subject.
        """
        if intent.child is None:
            return

        child = self.__save(clinical.child_patient(intent.child))
        info.resources.append(child)
        child_reference = make_reference(child)

        if intent.child.height is not None:
            resource = self.__vital(
                intent.child.height, child_reference, codes.LOINC_BODY_HEIGHT, codes.PROFILE_BODY_HEIGHT, "child.height"
            )
            info.add(SupportingKind.CHILD_HEIGHT, self.__save(resource))

        if intent.child.weight is not None:
            resource = self.__vital(
                intent.child.weight, child_reference, codes.LOINC_BODY_WEIGHT, codes.PROFILE_BODY_WEIGHT, "child.weight"
            )
            info.add(SupportingKind.CHILD_WEIGHT, self.__save(resource))

    def __vital(
        self,
        value: QuantityOrReference,
        subject: Reference,
        code: tuple[str, str],
        profile: str,
        name: str,
        check_subject: bool = False,
    ) -> Observation:
        if value.reference is not None:
            observation = (
                self.__read_observation(value.reference, f"{name}.subject")
                if check_subject
                else self.__read_observation(value.reference)
            )
            return clinical.copy_observation(observation, subject, profile)
        if value.quantity is not None:
            return clinical.vital_sign(subject, code, profile, value.quantity)

        raise InvalidParameter(f"{name} must be either Reference or Quantity", name)

    def __ha1c(self, value: QuantityOrReference) -> Observation:
        if value.reference is not None:
            observation = self.__read_observation(value.reference, "ha1cObservation.subject")
            resource = clinical.copy_observation(observation, self.__subject, codes.PROFILE_HA1C)
            resource.status = "final"
            resource.effectiveDateTime = utc_now()
            return resource
        if value.quantity is not None:
            return clinical.ha1c(self.__subject, value.quantity)

        raise InvalidParameter("ha1cObservation must be either Reference or Quantity", "ha1cObservation")

    def __read_observation(self, reference: Reference, expression: str | None = None) -> Observation:
        resource = self.__gateway.read(reference)
        if not isinstance(resource, Observation):
            raise InvalidParameter(f"{reference.reference} is not an Observation", expression)
        if expression is not None:
            self.__check_subject(resource.subject, expression)
        return resource

    def __check_subject(self, subject: Reference | None, expression: str) -> None:
        """
        A supporting resource may still point at the subject as the EHR knows it
        or already at the patient in our store.
        """
        if is_equal_reference(self.__original_subject, subject, self.__subject_base_url):
            return
        if is_equal_reference(self.__subject, subject):
            return
        raise SubjectMismatch(SUBJECT_MISMATCH, expression)

    def __save(self, resource: Resource) -> Resource:
        return self.__gateway.save(resource)
