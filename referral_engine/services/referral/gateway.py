from abc import ABC, abstractmethod
import logging
from typing import Dict, List, Sequence, Tuple

from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.operationoutcome import OperationOutcome
from fhir.resources.R4B.reference import Reference
from fhir.resources.R4B.resource import Resource

from referral_engine.exceptions import NotFound
from referral_engine.models.referral.context import RequestContext
from referral_engine.services.api.authenticators.registry import AuthenticatorRegistry, normalize_base_url
from referral_engine.services.api.fhir_api import FhirApi, FhirApiConfig
from referral_engine.services.fhir.bundle.bundle_utils import get_resources
from referral_engine.services.fhir.references import parse_reference
from referral_engine.services.fhir.search_result import SearchResult

logger = logging.getLogger(__name__)


class ResourceGateway(ABC):
    """
    Uniform access to the record store and to external FHIR servers. Local
    references live on the store, absolute references on their own server.
    """

    @abstractmethod
    def read(self, reference: Reference | str) -> Resource: ...

    @abstractmethod
    def search(
        self,
        resource_type: str,
        params: Sequence[Tuple[str, str]],
        includes: Sequence[str] | None = None,
        base_url: str | None = None,
    ) -> SearchResult: ...

    @abstractmethod
    def save(self, resource: Resource) -> Resource: ...

    @abstractmethod
    def update(self, resource: Resource) -> Resource: ...

    @abstractmethod
    def delete(self, resource_type: str, resource_id: str) -> Tuple[int, OperationOutcome | None]: ...

    @abstractmethod
    def process_message(
        self, endpoint_url: str, bundle: Bundle, token: str | None = None
    ) -> Tuple[int, OperationOutcome | None]: ...


class FhirResourceGateway(ResourceGateway):
    def __init__(self, context: RequestContext, registry: AuthenticatorRegistry, timeout: int) -> None:
        self.__context = context
        self.__registry = registry
        self.__timeout = timeout
        self.__apis: Dict[str, FhirApi] = {}

    def read(self, reference: Reference | str) -> Resource:
        value = reference.reference if isinstance(reference, Reference) else reference
        if value is None:
            raise NotFound("Reference has no literal value")

        try:
            parsed = parse_reference(value)
        except ValueError:
            raise NotFound(f"{value} is not a resolvable reference", value)

        api = self.__api(parsed.base_url or self.__context.store_url)
        return api.read(parsed.resource_type, parsed.id)

    def search(
        self,
        resource_type: str,
        params: Sequence[Tuple[str, str]],
        includes: Sequence[str] | None = None,
        base_url: str | None = None,
    ) -> SearchResult:
        query: List[Tuple[str, str]] = list(params)
        for include in includes or []:
            query.append(("_include", include))

        bundle = self.__api(base_url or self.__context.store_url).search(resource_type, query)
        return SearchResult(get_resources(bundle), bundle.total)

    def save(self, resource: Resource) -> Resource:
        saved = self.__api(self.__context.store_url).create(resource)
        if saved.id is not None:
            # keep the id part only, a version would break later references
            saved.id = saved.id.split("/_history")[0].split("/")[-1]
        return saved

    def update(self, resource: Resource) -> Resource:
        return self.__api(self.__context.store_url).update(resource)

    def delete(self, resource_type: str, resource_id: str) -> Tuple[int, OperationOutcome | None]:
        return self.__api(self.__context.store_url).delete(resource_type, resource_id)

    def process_message(
        self, endpoint_url: str, bundle: Bundle, token: str | None = None
    ) -> Tuple[int, OperationOutcome | None]:
        return self.__api(endpoint_url).process_message(bundle, token)

    def __api(self, base_url: str) -> FhirApi:
        key = normalize_base_url(base_url)
        if key not in self.__apis:
            logger.debug(f"Creating FHIR client for {base_url}")
            self.__apis[key] = FhirApi(
                FhirApiConfig(base_url=base_url, timeout=self.__timeout),
                auth=self.__registry.for_url(base_url),
            )
        return self.__apis[key]
