import logging
import time
from typing import Any

import requests
from requests.exceptions import RequestException

from referral_engine.services.api.authenticators.authenticator import Authenticator

logger = logging.getLogger(__name__)

# Tokens are renewed this many seconds before the announced expiry
EXPIRY_MARGIN = 10


class YusaAuthenticator(Authenticator):
    """
    Two step token flow used by YUSA recipients.

    The authentication api hands out a short lived auth code for our client id and
    subscription key. The authorization api exchanges that code plus the api key for
    an access token. Both carry their lifetime in minutes and are cached separately,
    so an expired access token is renewed with the cached auth code when possible.
    """

    def __init__(
        self,
        authentication_api_url: str,
        authorization_api_url: str,
        client_id: str,
        api_sub_key: str,
        api_key: str,
        timeout: int = 60,
    ) -> None:
        self.__authentication_api_url = authentication_api_url
        self.__authorization_api_url = authorization_api_url
        self.__client_id = client_id
        self.__api_sub_key = api_sub_key
        self.__api_key = api_key
        self.__timeout = timeout
        self.auth_code: str | None = None
        self.auth_code_expiry = 0.0
        self.access_token: str | None = None
        self.access_token_expiry = 0.0

    def get_client_headers(self) -> dict[str, str]:
        return {"x-client-id": self.__client_id, "x-api-sub-key": self.__api_sub_key}

    def get_auth(self) -> Any:
        return None

    def get_authentication_header(self) -> str:
        now = time.time()
        if self.access_token is not None and now < self.access_token_expiry - EXPIRY_MARGIN:
            return f"Bearer {self.access_token}"

        if self.auth_code is None or now >= self.auth_code_expiry - EXPIRY_MARGIN:
            data = self.__call("GET", self.__authentication_api_url)
            try:
                self.auth_code = str(data["authCode"])
                self.auth_code_expiry = now + int(data["expiresInMin"]) * 60
            except (KeyError, TypeError, ValueError) as e:
                raise ValueError(f"Unexpected authentication response: {e}")
            logger.debug("Received new auth code from authentication api")

        data = self.__call(
            "POST",
            self.__authorization_api_url,
            {"authCode": self.auth_code, "apiKey": self.__api_key},
        )
        try:
            self.access_token = str(data["accessToken"])
            self.access_token_expiry = now + int(data["expiresInMin"]) * 60
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Unexpected authorization response: {e}")

        return f"Bearer {self.access_token}"

    def __call(self, method: str, url: str, body: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = requests.request(
                method,
                url,
                headers=self.get_client_headers(),
                json=body,
                timeout=self.__timeout,
            )
        except RequestException as e:
            raise ConnectionError(f"Failed to connect to {url}: {e}")

        if response.status_code >= 300:
            raise ValueError(
                f"Failed to get access token ({response.status_code}): {response.text}"
            )

        try:
            data = response.json()
        except requests.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON response from {url}: {e}")

        if not isinstance(data, dict):
            raise ValueError(f"Unexpected response from {url}: {data}")
        return data
