import logging

from referral_engine.services.api.authenticators.authenticator import Authenticator
from referral_engine.services.api.authenticators.null_authenticator import NullAuthenticator

logger = logging.getLogger(__name__)


def normalize_base_url(url: str) -> str:
    return url.strip().rstrip("/").lower()


class AuthenticatorRegistry:
    """
    Maps FHIR server base urls to the authenticator that must be used for them.
    Servers that are not registered are called without credentials.
    """

    def __init__(self) -> None:
        self.__authenticators: dict[str, Authenticator] = {}

    def register(self, base_url: str, authenticator: Authenticator) -> None:
        self.__authenticators[normalize_base_url(base_url)] = authenticator

    def for_url(self, url: str) -> Authenticator:
        target = normalize_base_url(url)
        match = None
        for base_url, authenticator in self.__authenticators.items():
            if target == base_url or target.startswith(base_url + "/"):
                # the longest registered prefix wins
                if match is None or len(base_url) > len(match[0]):
                    match = (base_url, authenticator)

        if match is None:
            return NullAuthenticator()
        return match[1]

    def get_bearer_token(self, server_url: str) -> str | None:
        return self.for_url(server_url).get_bearer_token()
