from typing import Any, Dict

from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.endpoint import Endpoint
from fhir.resources.R4B.parameters import Parameters
from fhir.resources.R4B.patient import Patient
import pytest

from referral_engine.exceptions import InvalidEnvelope, InvalidParameter
from referral_engine.models.referral.context import ReferralResult
from referral_engine.services.fhir import profiles
from referral_engine.services.fhir.references import make_reference
from referral_engine.services.fhir.utils import to_json
from referral_engine.services.referral.parameters import (
    parse_message_content,
    parse_referral_request,
    referral_result_to_parameters,
)
from tests.mock_data import patient, requester, service_request


def _parameters(*parameters: Dict[str, Any]) -> Dict[str, Any]:
    return {"resourceType": "Parameters", "parameter": list(parameters)}


def test_parse_referral_request_should_read_resources_and_codes() -> None:
    intent = parse_referral_request(
        _parameters(
            {"name": "referral", "resource": service_request},
            {"name": "patient", "resource": patient},
            {"name": "requester", "resource": requester},
            {"name": "bserProviderBaseUrl", "valueUri": "http://ehr.example.org/fhir"},
            {"name": "serviceType", "valueCoding": {"code": "obesity"}},
            {"name": "educationLevel", "valueCode": "HS"},
            {"name": "smokingStatus", "valueString": "8517006"},
        )
    )

    assert intent.referral is not None and intent.referral.id == "draft-1"
    assert isinstance(intent.patient, Patient)
    assert intent.patient is not None and intent.patient.id == "patient-1"
    assert intent.requester is not None and intent.requester.id == "practitioner-1"
    assert intent.provider_base_url == "http://ehr.example.org/fhir"
    assert intent.service_type == "obesity"
    assert intent.education_level == "HS"
    assert intent.smoking_status == "8517006"


def test_parse_referral_request_should_read_parts() -> None:
    intent = parse_referral_request(
        _parameters(
            {
                "name": "bloodPressure",
                "part": [
                    {"name": "systolic", "valueQuantity": {"value": 120, "unit": "mm[Hg]"}},
                    {"name": "diastolic", "valueQuantity": {"value": 80, "unit": "mm[Hg]"}},
                    {"name": "date", "valueDateTime": "2024-02-01"},
                ],
            },
            {
                "name": "child",
                "part": [
                    {"name": "firstName", "valueString": "Baby"},
                    {"name": "lastName", "valueString": "Doe"},
                    {"name": "gender", "valueCode": "female"},
                    {"name": "height", "valueQuantity": {"value": 50, "unit": "cm"}},
                    {"name": "weight", "valueReference": {"reference": "Observation/w-1"}},
                ],
            },
            {
                "name": "communicationPreferences",
                "part": [
                    {"name": "bestDay", "valueString": "Monday"},
                    {"name": "leaveMessage", "valueBoolean": True},
                ],
            },
        )
    )

    assert intent.blood_pressure is not None
    assert intent.blood_pressure.systolic is not None and intent.blood_pressure.systolic.value == 120
    assert intent.blood_pressure.date == "2024-02-01"
    assert intent.child is not None
    assert intent.child.first_name == "Baby"
    assert intent.child.height is not None and intent.child.height.quantity is not None
    assert intent.child.weight is not None and intent.child.weight.reference is not None
    assert [(p.name, p.value) for p in intent.communication_preferences] == [
        ("bestDay", "Monday"),
        ("leaveMessage", "true"),
    ]


def test_parse_referral_request_should_collect_repeating_diagnoses_and_bundles() -> None:
    intent = parse_referral_request(
        _parameters(
            {"name": "diagnosis", "valueCoding": {"system": "http://snomed.info/sct", "code": "38341003"}},
            {"name": "diagnosis", "valueReference": {"reference": "Condition/c-1"}},
            {
                "name": "allergies",
                "resource": {
                    "resourceType": "Bundle",
                    "type": "collection",
                    "entry": [
                        {
                            "resource": {
                                "resourceType": "AllergyIntolerance",
                                "patient": {"reference": "Patient/patient-1"},
                            }
                        }
                    ],
                },
            },
            {"name": "isBabyLatching", "valueBoolean": False},
            {"name": "bodyWeight", "valueString": "Observation/w-1"},
        )
    )

    assert len(intent.diagnoses) == 2
    assert intent.diagnoses[0].coding is not None
    assert intent.diagnoses[1].reference is not None
    assert len(intent.allergies) == 1
    assert intent.is_baby_latching is False
    assert intent.body_weight is not None and intent.body_weight.reference is not None


def test_parse_referral_request_should_ignore_unknown_parameters() -> None:
    intent = parse_referral_request(_parameters({"name": "somethingElse", "valueString": "x"}))

    assert intent.referral is None


@pytest.mark.parametrize(
    "parameter",
    [
        {"name": "referral", "valueString": "not a resource"},
        {"name": "referral", "resource": {"resourceType": "Patient", "id": "x"}},
        {"name": "bodyHeight", "valueBoolean": True},
        {"name": "diagnosis", "valueString": "flu"},
        {"name": "allergies", "resource": {"resourceType": "Patient"}},
    ],
)
def test_parse_referral_request_should_reject_wrong_values(parameter: Dict[str, Any]) -> None:
    with pytest.raises(InvalidParameter):
        parse_referral_request(_parameters(parameter))


def test_parse_referral_request_should_require_parameters() -> None:
    with pytest.raises(InvalidParameter):
        parse_referral_request(patient)


def test_parse_referral_request_should_reject_malformed_parameters() -> None:
    with pytest.raises(InvalidParameter):
        parse_referral_request({"resourceType": "Parameters", "parameter": "patient"})


def test_parse_message_content_should_accept_parameters_and_bundle() -> None:
    bundle = {"resourceType": "Bundle", "type": "message"}

    from_parameters = parse_message_content(
        _parameters({"name": "content", "resource": bundle}, {"name": "async", "valueBoolean": True})
    )
    from_bundle = parse_message_content(bundle)

    assert isinstance(from_parameters, Bundle)
    assert isinstance(from_bundle, Bundle)
    assert from_bundle.type == "message"


def test_parse_message_content_without_content_should_return_none() -> None:
    assert parse_message_content(_parameters({"name": "async", "valueBoolean": True})) is None


@pytest.mark.parametrize(
    "data",
    [
        {"no": "resource"},
        {"resourceType": "Patient"},
        _parameters({"name": "content", "resource": {"resourceType": "Patient"}}),
    ],
)
def test_parse_message_content_should_reject_non_bundles(data: Dict[str, Any]) -> None:
    with pytest.raises(InvalidEnvelope):
        parse_message_content(data)


def test_referral_result_to_parameters() -> None:
    envelope = Bundle(id="envelope-1", type="message")
    endpoint = profiles.stub_recipient_endpoint()

    parameters = referral_result_to_parameters(
        ReferralResult(
            envelope_reference=make_reference(envelope),
            envelope=envelope,
            recipient_endpoint=endpoint,
            warning="Submission is disabled.",
        )
    )
    result = to_json(parameters)

    assert isinstance(parameters, Parameters)
    assert isinstance(parameters.parameter[1].resource, Bundle)
    assert isinstance(parameters.parameter[2].resource, Endpoint)

    by_name = {p["name"]: p for p in result["parameter"]}
    assert result["resourceType"] == "Parameters"
    assert by_name["referral_request_reference"]["valueReference"] == {"reference": "Bundle/envelope-1"}
    assert by_name["referral_request_resource"]["resource"]["id"] == "envelope-1"
    assert by_name["recipient_endpoint"]["resource"]["status"] == "test"
    assert by_name["warning"]["valueString"] == "Submission is disabled."


def test_referral_result_without_warning_should_omit_it() -> None:
    envelope = Bundle(id="envelope-1", type="message")

    parameters = referral_result_to_parameters(
        ReferralResult(
            envelope_reference=make_reference(envelope),
            envelope=envelope,
            recipient_endpoint=profiles.stub_recipient_endpoint(),
        )
    )

    assert "warning" not in [p.name for p in parameters.parameter]
