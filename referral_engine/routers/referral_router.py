import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from referral_engine.container import get_referral_service
from referral_engine.exceptions import ReferralEngineError
from referral_engine.services.fhir.outcome import build_error_outcome
from referral_engine.services.fhir.utils import to_json
from referral_engine.services.referral.parameters import (
    parse_message_content,
    parse_referral_request,
    referral_result_to_parameters,
)
from referral_engine.services.referral.referral_service import ReferralService

logger = logging.getLogger(__name__)

FHIR_JSON = "application/fhir+json"

router = APIRouter(tags=["BSeR referral operations"])


@router.post("/$referral-request", summary="Assemble and submit a referral")
def referral_request(
    parameters: Dict[str, Any] = Body(...),
    service: ReferralService = Depends(get_referral_service),
) -> Response:
    intent = parse_referral_request(parameters)
    result = service.referral_request(intent)
    return JSONResponse(content=to_json(referral_result_to_parameters(result)), media_type=FHIR_JSON)


@router.post("/$process-message", status_code=204, summary="Process a response or feedback message")
def process_message(
    body: Dict[str, Any] = Body(...),
    service: ReferralService = Depends(get_referral_service),
) -> Response:
    service.process_message(parse_message_content(body))
    return Response(status_code=204)


def referral_engine_error_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, ReferralEngineError):
        raise exc

    logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    outcome = build_error_outcome(exc.message, exc.expression, code=exc.issue_code, with_id=False)
    return JSONResponse(status_code=exc.status_code, content=to_json(outcome), media_type=FHIR_JSON)


def request_validation_error_handler(request: Request, exc: Exception) -> Response:
    message = "Request body must be a FHIR resource in json format"
    if isinstance(exc, RequestValidationError):
        message = f"{message}: {exc.errors()}"

    outcome = build_error_outcome(message, code="invalid", with_id=False)
    return JSONResponse(status_code=400, content=to_json(outcome), media_type=FHIR_JSON)
