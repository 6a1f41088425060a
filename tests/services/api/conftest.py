from typing import Any, Dict

from fhir.resources.R4B.patient import Patient
import pytest

from referral_engine.services.api.fhir_api import FhirApi, FhirApiConfig
from referral_engine.services.api.authenticators.bearer_authenticator import BearerAuthenticator

MOCK_TOKEN = "some-token"


@pytest.fixture()
def base_url() -> str:
    return "http://example.com/fhir"


@pytest.fixture()
def fhir_api(base_url: str) -> FhirApi:
    return FhirApi(FhirApiConfig(base_url=base_url, timeout=1), auth=BearerAuthenticator(MOCK_TOKEN))


@pytest.fixture()
def mock_patient() -> Patient:
    return Patient(id="patient-1", gender="female")


@pytest.fixture()
def error_outcome() -> Dict[str, Any]:
    return {
        "resourceType": "OperationOutcome",
        "issue": [{"severity": "error", "code": "processing", "diagnostics": "Validation failed"}],
    }
