from typing import Any

from referral_engine.services.api.authenticators.authenticator import Authenticator


class BearerAuthenticator(Authenticator):
    """
    Sends a fixed, pre-issued bearer token.
    """
    def __init__(self, token: str) -> None:
        self.__token = token

    def get_authentication_header(self) -> str:
        return f"Bearer {self.__token}"

    def get_auth(self) -> Any:
        return None
