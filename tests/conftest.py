from collections.abc import Generator

from fastapi import FastAPI
from fastapi.testclient import TestClient
from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.servicerequest import ServiceRequest
import inject
import pytest

from referral_engine.application import create_fastapi_app
from referral_engine.config import reset_config, set_config
from referral_engine.models.referral.context import DispatchConfig, RequestContext, Warnings
from referral_engine.models.referral.intent import ReferralIntent
from referral_engine.services.referral.assembler import ReferralAssembler
from tests.mock_data import PROCESS_MESSAGE_URL, patient, seed_directory, service_request
from tests.mock_store import STORE_URL, InMemoryGateway
from tests.test_config import get_test_config


@pytest.fixture
def fastapi_app() -> Generator[FastAPI, None, None]:
    set_config(get_test_config())
    app = create_fastapi_app()
    yield app
    inject.clear()
    reset_config()


@pytest.fixture
def api_client(fastapi_app: FastAPI) -> TestClient:
    return TestClient(fastapi_app)


@pytest.fixture
def gateway() -> InMemoryGateway:
    gateway = InMemoryGateway()
    seed_directory(gateway)
    return gateway


@pytest.fixture
def warnings() -> Warnings:
    return Warnings()


@pytest.fixture
def context() -> RequestContext:
    return RequestContext(store_url=STORE_URL, process_message_url=PROCESS_MESSAGE_URL)


@pytest.fixture
def dispatch_config() -> DispatchConfig:
    return DispatchConfig(recipient_ready=True)


@pytest.fixture
def assembler(
    gateway: InMemoryGateway,
    context: RequestContext,
    dispatch_config: DispatchConfig,
    warnings: Warnings,
) -> ReferralAssembler:
    return ReferralAssembler(gateway, context, dispatch_config, warnings)


@pytest.fixture
def intent() -> ReferralIntent:
    return ReferralIntent(
        referral=ServiceRequest.model_validate(service_request),
        patient=Patient.model_validate(patient),
        provider_base_url=STORE_URL,
        service_type="tobacco-use-cessation",
    )
