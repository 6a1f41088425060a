from dataclasses import dataclass
import logging
from typing import Any, Dict, List, Tuple

from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.operationoutcome import OperationOutcome
from fhir.resources.R4B.resource import Resource
from requests import JSONDecodeError, Response
from requests.exceptions import ConnectionError

from referral_engine.exceptions import NotFound, PersistenceError, Unreachable
from referral_engine.services.api.api_service import HttpService
from referral_engine.services.api.authenticators.authenticator import Authenticator
from referral_engine.services.fhir.outcome import get_diagnostics, has_error_issue
from referral_engine.services.fhir.resources.factory import create_model, create_resource
from referral_engine.services.fhir.utils import to_json

ERR_MSG_FORMAT = "FHIR API error: %s"
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FhirApiConfig:
    base_url: str
    timeout: int
    retries: int = 1
    backoff: float = 0.1


class FhirApi(HttpService):
    """
    FHIR REST calls against a single server. Transport failures surface as
    Unreachable, failed writes as PersistenceError.
    """

    def __init__(self, config: FhirApiConfig, auth: Authenticator | None = None):
        super().__init__(
            base_url=config.base_url,
            timeout=config.timeout,
            retries=config.retries,
            backoff=config.backoff,
            authenticator=auth,
        )

    def read(self, resource_type: str, resource_id: str) -> Resource:
        response = self.__request("GET", f"{resource_type}/{resource_id}")
        if response.status_code in (404, 410):
            logger.warning(f"Resource {resource_type}/{resource_id} not found on {self.base_url}")
            raise NotFound(f"{resource_type}/{resource_id} does not exist", f"{resource_type}/{resource_id}")

        if response.status_code >= 300:
            logger.error(ERR_MSG_FORMAT, self.__safe_json(response))
            raise NotFound(
                f"Failed to read {resource_type}/{resource_id}: HTTP {response.status_code}",
                f"{resource_type}/{resource_id}",
            )

        data = self.__safe_json(response)
        if not data:
            raise NotFound(f"{resource_type}/{resource_id} returned no content", f"{resource_type}/{resource_id}")

        return create_resource(data)

    def search(self, resource_type: str, params: List[Tuple[str, str]]) -> Bundle:
        """
        Search with a list of parameters so that repeating parameters such as
        _include are kept.
        """
        response = self.__request("GET", resource_type, params=params)
        if response.status_code >= 300:
            logger.error(ERR_MSG_FORMAT, self.__safe_json(response))
            raise Unreachable(f"Search on {resource_type} failed with HTTP {response.status_code}")

        return create_model(Bundle, self.__safe_json(response))

    def create(self, resource: Resource) -> Resource:
        resource_type = resource.get_resource_type()
        response = self.__request("POST", resource_type, json=to_json(resource))
        return self.__handle_write(resource, response)

    def update(self, resource: Resource) -> Resource:
        resource_type = resource.get_resource_type()
        if resource.id is None:
            raise PersistenceError(f"Cannot update a {resource_type} without id", resource_type)

        response = self.__request("PUT", f"{resource_type}/{resource.id}", json=to_json(resource))
        return self.__handle_write(resource, response)

    def delete(self, resource_type: str, resource_id: str) -> Tuple[int, OperationOutcome | None]:
        response = self.__request("DELETE", f"{resource_type}/{resource_id}")
        data = self.__safe_json(response)
        outcome = None
        if data.get("resourceType") == "OperationOutcome":
            outcome = create_model(OperationOutcome, data)

        return response.status_code, outcome

    def process_message(
        self, bundle: Bundle, token: str | None = None
    ) -> Tuple[int, OperationOutcome | None]:
        """
        Posts a message bundle to the $process-message operation of the server.
        """
        headers = {"Authorization": f"Bearer {token}"} if token else None
        response = self.__request(
            "POST", "$process-message", json=to_json(bundle), params={"async": "true"}, headers=headers
        )
        data = self.__safe_json(response)
        outcome = None
        if data.get("resourceType") == "OperationOutcome":
            outcome = create_model(OperationOutcome, data)

        return response.status_code, outcome

    def __handle_write(self, resource: Resource, response: Response) -> Resource:
        resource_type = resource.get_resource_type()
        identity = f"{resource_type}/{resource.id}" if resource.id else resource_type
        data = self.__safe_json(response)

        if data.get("resourceType") == "OperationOutcome":
            outcome = create_model(OperationOutcome, data)
            if has_error_issue(outcome) or response.status_code >= 300:
                logger.error(ERR_MSG_FORMAT, data)
                raise PersistenceError(
                    f"Failed to save {identity}: {get_diagnostics(outcome)}", identity
                )

        if response.status_code >= 300:
            logger.error(ERR_MSG_FORMAT, data or response.text)
            raise PersistenceError(f"Failed to save {identity}: HTTP {response.status_code}", identity)

        if data.get("resourceType") == resource_type:
            return create_model(type(resource), data)

        # servers answering with return=minimal only send a Location header
        location = response.headers.get("Location") or response.headers.get("Content-Location")
        saved = resource.model_copy(deep=True)
        if location:
            parts = location.rstrip("/").split("/")
            if "_history" in parts:
                parts = parts[: parts.index("_history")]
            saved.id = parts[-1]

        return saved

    def __request(
        self,
        method: str,
        sub_route: str,
        json: Dict[str, Any] | None = None,
        params: Any = None,
        headers: Dict[str, str] | None = None,
    ) -> Response:
        try:
            return self.do_request(method, sub_route=sub_route, json=json, params=params, headers=headers)
        except ConnectionError as e:
            logger.error(ERR_MSG_FORMAT, e)
            raise Unreachable(f"{self.base_url} could not be reached: {e}")

    @staticmethod
    def __safe_json(response: Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except (JSONDecodeError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}
