from unittest.mock import MagicMock, patch

from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.reference import Reference
import pytest

from referral_engine.exceptions import NotFound
from referral_engine.models.referral.context import RequestContext
from referral_engine.services.api.authenticators.bearer_authenticator import BearerAuthenticator
from referral_engine.services.api.authenticators.registry import AuthenticatorRegistry
from referral_engine.services.referral.gateway import FhirResourceGateway
from tests.mock_data import PROCESS_MESSAGE_URL
from tests.mock_store import STORE_URL

PATCHED_MODULE = "referral_engine.services.api.api_service.HttpService.do_request"


def _response(status_code: int, body: dict | None = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.headers = {}
    response.json.return_value = body or {}
    return response


@pytest.fixture
def fhir_gateway() -> FhirResourceGateway:
    registry = AuthenticatorRegistry()
    registry.register("http://ehr.example.org/fhir", BearerAuthenticator("ehr-token"))
    return FhirResourceGateway(RequestContext(STORE_URL, PROCESS_MESSAGE_URL), registry, timeout=1)


@patch("referral_engine.services.api.api_service.request")
def test_read_should_use_server_of_absolute_reference(mock_request: MagicMock, fhir_gateway: FhirResourceGateway) -> None:
    mock_request.return_value = _response(200, {"resourceType": "Patient", "id": "1"})

    fhir_gateway.read(Reference(reference="http://ehr.example.org/fhir/Patient/1"))

    kwargs = mock_request.call_args.kwargs
    assert kwargs["url"] == "http://ehr.example.org/fhir/Patient/1"
    assert kwargs["headers"]["Authorization"] == "Bearer ehr-token"


@patch("referral_engine.services.api.api_service.request")
def test_read_should_use_store_for_relative_reference(mock_request: MagicMock, fhir_gateway: FhirResourceGateway) -> None:
    mock_request.return_value = _response(200, {"resourceType": "Patient", "id": "1"})

    fhir_gateway.read("Patient/1")

    kwargs = mock_request.call_args.kwargs
    assert kwargs["url"] == f"{STORE_URL}/Patient/1"
    assert "Authorization" not in kwargs["headers"]


@pytest.mark.parametrize("reference", [Reference(display="Jane"), "#contained", "urn:uuid:1"])
def test_read_unresolvable_reference(fhir_gateway: FhirResourceGateway, reference: Reference | str) -> None:
    with pytest.raises(NotFound):
        fhir_gateway.read(reference)


@patch(PATCHED_MODULE)
def test_search_should_add_includes(mock_request: MagicMock, fhir_gateway: FhirResourceGateway) -> None:
    mock_request.return_value = _response(
        200,
        {
            "resourceType": "Bundle",
            "type": "searchset",
            "total": 1,
            "entry": [{"resource": {"resourceType": "Patient", "id": "1"}}],
        },
    )

    result = fhir_gateway.search("Patient", [("_id", "1")], includes=["Patient:organization"])

    assert mock_request.call_args.kwargs["params"] == [("_id", "1"), ("_include", "Patient:organization")]
    assert result.total == 1
    assert len(result) == 1
    patient = result.first(Patient)
    assert patient is not None and patient.id == "1"


@patch(PATCHED_MODULE)
def test_save_should_strip_version_from_id(mock_request: MagicMock, fhir_gateway: FhirResourceGateway) -> None:
    response = _response(201)
    response.headers = {"Location": f"{STORE_URL}/Patient/new-id/_history/1"}
    mock_request.return_value = response

    saved = fhir_gateway.save(Patient())

    assert saved.id == "new-id"


@patch(PATCHED_MODULE)
def test_process_message_should_target_endpoint(mock_request: MagicMock, fhir_gateway: FhirResourceGateway) -> None:
    mock_request.return_value = _response(200)

    status_code, outcome = fhir_gateway.process_message(
        "http://recipient.example.org/fhir", Bundle(type="message"), "token"
    )

    assert status_code == 200
    assert outcome is None
    assert mock_request.call_args.kwargs["sub_route"] == "$process-message"
