from typing import Any, Dict
from unittest.mock import MagicMock, patch

from fastapi import FastAPI
from fastapi.testclient import TestClient
from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.task import Task
import pytest

from referral_engine.container import get_referral_service
from referral_engine.exceptions import NoMatchingTask, SubjectMismatch
from referral_engine.services.referral.referral_service import ReferralService
from tests.mock_data import RECIPIENT_URL, patient, service_request
from tests.mock_store import STORE_URL, InMemoryGateway


def _referral_parameters(**extra: Any) -> Dict[str, Any]:
    parameters = [
        {"name": "referral", "resource": service_request},
        {"name": "patient", "resource": patient},
        {"name": "bserProviderBaseUrl", "valueString": STORE_URL},
        {"name": "serviceType", "valueCode": "tobacco-use-cessation"},
    ]
    parameters.extend({"name": k, **v} for k, v in extra.items())
    return {"resourceType": "Parameters", "parameter": parameters}


@pytest.fixture
def mock_service(fastapi_app: FastAPI) -> MagicMock:
    service = MagicMock(spec=ReferralService)
    fastapi_app.dependency_overrides[get_referral_service] = lambda: service
    return service


def test_health(api_client: TestClient) -> None:
    response = api_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_referral_request_should_assemble_and_submit(api_client: TestClient, gateway: InMemoryGateway) -> None:
    with patch.object(ReferralService, "create_gateway", return_value=gateway):
        response = api_client.post("/$referral-request", json=_referral_parameters())

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/fhir+json")
    body = response.json()
    assert body["resourceType"] == "Parameters"
    by_name = {p["name"]: p for p in body["parameter"]}
    assert by_name["referral_request_reference"]["valueReference"]["reference"].startswith("Bundle/")
    assert by_name["referral_request_resource"]["resource"]["type"] == "message"
    assert by_name["recipient_endpoint"]["resource"]["address"] == RECIPIENT_URL
    assert f"Submitted to {RECIPIENT_URL}/$process-message" in by_name["warning"]["valueString"]

    assert len(gateway.messages) == 1
    tasks = gateway.all("Task")
    assert len(tasks) == 1
    assert isinstance(tasks[0], Task)
    assert tasks[0].status == "requested"


def test_referral_request_without_referral_should_return_outcome(api_client: TestClient) -> None:
    body = {"resourceType": "Parameters", "parameter": [{"name": "patient", "resource": patient}]}

    response = api_client.post("/$referral-request", json=body)

    assert response.status_code == 400
    outcome = response.json()
    assert outcome["resourceType"] == "OperationOutcome"
    assert outcome["issue"][0]["severity"] == "error"
    assert outcome["issue"][0]["code"] == "required"
    assert outcome["issue"][0]["expression"] == ["Parameters.parameter.where(name='referral').empty()"]


def test_referral_request_should_reject_other_resources(api_client: TestClient) -> None:
    response = api_client.post("/$referral-request", json={"resourceType": "Patient"})

    assert response.status_code == 400
    assert response.json()["issue"][0]["code"] == "invalid"


def test_invalid_json_should_return_outcome(api_client: TestClient) -> None:
    response = api_client.post(
        "/$referral-request", content=b"not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json()["resourceType"] == "OperationOutcome"


def test_error_status_follows_exception(api_client: TestClient, mock_service: MagicMock) -> None:
    mock_service.referral_request.side_effect = SubjectMismatch("subject differs", "AllergyIntolerance.patient")

    response = api_client.post("/$referral-request", json=_referral_parameters())

    assert response.status_code == 422
    issue = response.json()["issue"][0]
    assert issue["diagnostics"] == "subject differs"
    assert issue["expression"] == ["AllergyIntolerance.patient"]


def test_referral_request_should_return_warning(api_client: TestClient, gateway: InMemoryGateway) -> None:
    gateway.delete_response = (409, None)
    with patch.object(ReferralService, "create_gateway", return_value=gateway):
        response = api_client.post("/$referral-request", json=_referral_parameters())

    assert response.status_code == 200
    by_name = {p["name"]: p for p in response.json()["parameter"]}
    assert "409" in by_name["warning"]["valueString"]


def test_process_message_should_accept_parameters(api_client: TestClient, mock_service: MagicMock) -> None:
    bundle = {"resourceType": "Bundle", "type": "message"}
    body = {"resourceType": "Parameters", "parameter": [{"name": "content", "resource": bundle}]}

    response = api_client.post("/$process-message", json=body)

    assert response.status_code == 204
    content = mock_service.process_message.call_args.args[0]
    assert isinstance(content, Bundle)
    assert content.type == "message"


def test_process_message_should_accept_bare_bundle(api_client: TestClient, mock_service: MagicMock) -> None:
    response = api_client.post("/$process-message", json={"resourceType": "Bundle", "type": "message"})

    assert response.status_code == 204
    mock_service.process_message.assert_called_once()


def test_process_message_without_content(api_client: TestClient, mock_service: MagicMock) -> None:
    response = api_client.post("/$process-message", json={"resourceType": "Parameters", "parameter": []})

    assert response.status_code == 204
    mock_service.process_message.assert_called_once_with(None)


def test_process_message_should_report_unmatched_task(api_client: TestClient, mock_service: MagicMock) -> None:
    mock_service.process_message.side_effect = NoMatchingTask("No Task found", "Task.identifier")

    response = api_client.post("/$process-message", json={"resourceType": "Bundle", "type": "message"})

    assert response.status_code == 404
    assert response.json()["issue"][0]["code"] == "not-found"


def test_process_message_should_reject_non_bundle_content(api_client: TestClient) -> None:
    body = {"resourceType": "Parameters", "parameter": [{"name": "content", "resource": {"resourceType": "Patient"}}]}

    response = api_client.post("/$process-message", json=body)

    assert response.status_code == 400
    assert response.json()["issue"][0]["code"] == "structure"
