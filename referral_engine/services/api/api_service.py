import logging
import time
from typing import Dict, Any, Sequence, Tuple
from requests import request, Response
from requests.exceptions import Timeout, ConnectionError
from yarl import URL

from referral_engine.services.api.authenticators.authenticator import Authenticator

logger = logging.getLogger(__name__)

QueryParams = Dict[str, Any] | Sequence[Tuple[str, str]]


class HttpService:
    """
    Base class for making HTTP requests against a single base url.

    Referral processing never retries on its own, so the default is a single
    attempt. Callers that can afford retries pass a higher count.
    """

    def __init__(
        self,
        base_url: str,
        timeout: int,
        retries: int = 1,
        backoff: float = 0.1,
        authenticator: Authenticator | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.authenticator = authenticator
        self.__timeout = timeout
        self.__retries = max(retries, 1)
        self.__backoff = backoff

    def do_request(
        self,
        method: str,
        sub_route: str | None = None,
        json: Dict[str, Any] | None = None,
        params: QueryParams | None = None,
        headers: Dict[str, str] | None = None,
    ) -> Response:
        """
        Perform an HTTP request. Raises ConnectionError when the server could not be reached.
        """
        request_headers = self.make_headers()
        if headers:
            request_headers.update(headers)
        url = self.make_target_url(sub_route, params)

        for attempt in range(self.__retries):
            try:
                logger.info(f"Making HTTP {method} request to {url}")
                response = request(
                    method=method,
                    url=str(url),
                    headers=request_headers,
                    timeout=self.__timeout,
                    json=json,
                    auth=self.authenticator.get_auth() if self.authenticator else None,
                )
                return response
            except (
                ConnectionError,
                Timeout,
            ):
                logger.warning(f"Failed to make request to {url} on attempt {attempt}")

                if attempt < self.__retries - 1:
                    logger.info(f"Retrying in {self.__backoff * (2**attempt)} seconds")
                    time.sleep(self.__backoff * (2**attempt))

        logger.error(f"Failed to make request to {url} after {self.__retries} attempts")
        raise ConnectionError(f"Failed to make request to {url}")

    def make_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/fhir+json",
            "Accept": "application/fhir+json",
        }
        if self.authenticator:
            header = self.authenticator.get_authentication_header()
            if header:
                headers["Authorization"] = header

        return headers

    def make_target_url(
        self, sub_route: str | None = None, params: QueryParams | None = None
    ) -> URL:
        url = self.base_url
        if sub_route:
            url = f"{url}/{sub_route.lstrip('/')}"

        target = URL(url)
        if params:
            return target.with_query(params)

        return target
