from typing import Any, Dict
from unittest.mock import MagicMock, patch

from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.patient import Patient
import pytest
from requests.exceptions import ConnectionError

from referral_engine.exceptions import NotFound, PersistenceError, Unreachable
from referral_engine.services.api.fhir_api import FhirApi
from tests.services.api.conftest import MOCK_TOKEN

PATCHED_MODULE = "referral_engine.services.api.api_service.HttpService.do_request"


def _response(status_code: int, body: Any = None, headers: Dict[str, str] | None = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


@patch(PATCHED_MODULE)
def test_read_should_return_resource(mock_request: MagicMock, fhir_api: FhirApi) -> None:
    mock_request.return_value = _response(200, {"resourceType": "Patient", "id": "patient-1"})

    actual = fhir_api.read("Patient", "patient-1")

    assert isinstance(actual, Patient)
    assert actual.id == "patient-1"
    mock_request.assert_called_once_with("GET", sub_route="Patient/patient-1", json=None, params=None, headers=None)


@pytest.mark.parametrize("status_code", [404, 410, 500])
@patch(PATCHED_MODULE)
def test_read_should_raise_not_found(mock_request: MagicMock, fhir_api: FhirApi, status_code: int) -> None:
    mock_request.return_value = _response(status_code)

    with pytest.raises(NotFound):
        fhir_api.read("Patient", "patient-1")


@patch(PATCHED_MODULE)
def test_read_should_raise_unreachable_on_connection_error(mock_request: MagicMock, fhir_api: FhirApi) -> None:
    mock_request.side_effect = ConnectionError("refused")

    with pytest.raises(Unreachable):
        fhir_api.read("Patient", "patient-1")


@patch(PATCHED_MODULE)
def test_search_should_keep_repeating_parameters(mock_request: MagicMock, fhir_api: FhirApi) -> None:
    mock_request.return_value = _response(200, {"resourceType": "Bundle", "type": "searchset", "total": 0})
    params = [("_id", "role-1"), ("_include", "PractitionerRole:organization"), ("_include", "PractitionerRole:endpoint")]

    actual = fhir_api.search("PractitionerRole", params)

    assert isinstance(actual, Bundle)
    assert mock_request.call_args.kwargs["params"] == params


@patch(PATCHED_MODULE)
def test_search_should_fail_on_status_code(mock_request: MagicMock, fhir_api: FhirApi) -> None:
    mock_request.return_value = _response(500)

    with pytest.raises(Unreachable):
        fhir_api.search("Patient", [("identifier", "x")])


@patch(PATCHED_MODULE)
def test_create_should_return_stored_resource(
    mock_request: MagicMock, fhir_api: FhirApi, mock_patient: Patient
) -> None:
    mock_request.return_value = _response(201, {"resourceType": "Patient", "id": "server-id"})

    actual = fhir_api.create(mock_patient)

    assert actual.id == "server-id"
    assert mock_request.call_args.args[0] == "POST"
    assert mock_request.call_args.kwargs["json"]["resourceType"] == "Patient"


@patch(PATCHED_MODULE)
def test_create_should_take_id_from_location(
    mock_request: MagicMock, fhir_api: FhirApi, mock_patient: Patient
) -> None:
    mock_request.return_value = _response(
        201, headers={"Location": "http://example.com/fhir/Patient/server-id/_history/1"}
    )

    actual = fhir_api.create(mock_patient)

    assert actual.id == "server-id"


@patch(PATCHED_MODULE)
def test_create_should_fail_on_error_outcome(
    mock_request: MagicMock, fhir_api: FhirApi, mock_patient: Patient, error_outcome: Dict[str, Any]
) -> None:
    mock_request.return_value = _response(422, error_outcome)

    with pytest.raises(PersistenceError) as e:
        fhir_api.create(mock_patient)

    assert "Validation failed" in e.value.message
    assert e.value.resource_identity == "Patient/patient-1"


@patch(PATCHED_MODULE)
def test_create_should_fail_on_status_code(
    mock_request: MagicMock, fhir_api: FhirApi, mock_patient: Patient
) -> None:
    mock_request.return_value = _response(500)

    with pytest.raises(PersistenceError):
        fhir_api.create(mock_patient)


@patch(PATCHED_MODULE)
def test_update_should_put_resource(mock_request: MagicMock, fhir_api: FhirApi, mock_patient: Patient) -> None:
    mock_request.return_value = _response(200, {"resourceType": "Patient", "id": "patient-1"})

    fhir_api.update(mock_patient)

    assert mock_request.call_args.args[0] == "PUT"
    assert mock_request.call_args.kwargs["sub_route"] == "Patient/patient-1"


def test_update_without_id_should_fail(fhir_api: FhirApi) -> None:
    with pytest.raises(PersistenceError):
        fhir_api.update(Patient())


@patch(PATCHED_MODULE)
def test_delete_should_return_outcome(
    mock_request: MagicMock, fhir_api: FhirApi, error_outcome: Dict[str, Any]
) -> None:
    mock_request.return_value = _response(409, error_outcome)

    status_code, outcome = fhir_api.delete("ServiceRequest", "draft-1")

    assert status_code == 409
    assert outcome is not None and outcome.issue[0].diagnostics == "Validation failed"


@patch(PATCHED_MODULE)
def test_process_message_should_post_async_with_token(mock_request: MagicMock, fhir_api: FhirApi) -> None:
    mock_request.return_value = _response(202)

    status_code, outcome = fhir_api.process_message(Bundle(type="message"), "recipient-token")

    assert status_code == 202
    assert outcome is None
    kwargs = mock_request.call_args.kwargs
    assert kwargs["sub_route"] == "$process-message"
    assert kwargs["params"] == {"async": "true"}
    assert kwargs["headers"] == {"Authorization": "Bearer recipient-token"}


def test_make_headers_should_use_authenticator(fhir_api: FhirApi) -> None:
    headers = fhir_api.make_headers()

    assert headers["Authorization"] == f"Bearer {MOCK_TOKEN}"
    assert headers["Content-Type"] == "application/fhir+json"


def test_make_target_url(fhir_api: FhirApi) -> None:
    url = fhir_api.make_target_url("Patient", [("identifier", "a|b")])

    assert str(url).startswith("http://example.com/fhir/Patient?identifier=a")
