from abc import ABC, abstractmethod
from typing import Any


class Authenticator(ABC):
    """
    Abstract base class for authentication providers.

    Concrete implementations return the credentials needed to call a FHIR
    server or a recipient api, either as an ``Authorization`` header value or
    as an object understood by ``requests``.
    """

    @abstractmethod
    def get_authentication_header(self) -> str:
        """
        Returns an authentication header value as a string, e.g. ``"Bearer <token>"``.
        An empty string means no header should be sent.
        """
        ...

    @abstractmethod
    def get_auth(self) -> Any:
        """
        Return authentication data in a library-specific format, such as the
        ``auth`` parameter of ``requests``.
        """
        ...

    def get_bearer_token(self) -> str | None:
        """
        Returns the raw bearer token when this authenticator issues one.
        """
        header = self.get_authentication_header()
        if header.startswith("Bearer "):
            return header[len("Bearer "):]
        return None
