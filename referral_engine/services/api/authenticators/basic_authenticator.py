from typing import Any

from requests.auth import HTTPBasicAuth

from referral_engine.services.api.authenticators.authenticator import Authenticator


class BasicAuthenticator(Authenticator):
    def __init__(self, username: str, password: str) -> None:
        self.__username = username
        self.__password = password

    def get_authentication_header(self) -> str:
        # requests builds the header from get_auth()
        return ""

    def get_auth(self) -> Any:
        return HTTPBasicAuth(self.__username, self.__password)
